"""
HTTP API for uploading and downloading packs.

Endpoints:
    POST /upload     multipart form with "id" (text) and "pack" (file)
    GET  /pack.zip   ?id={sha1} - download a registered pack
    GET  /debug      liveness check
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated, Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from packstore import __version__
from packstore.config import Settings
from packstore.exceptions import RegistrationError, UploadValidationError
from packstore.logging import get_logger, log_context
from packstore.service import PackService
from packstore.types import generate_id

logger = get_logger(__name__)

MAX_ID_BYTES = 8192


class UploadResponse(BaseModel):
    url: str
    sha1: str


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def validate_upload(
    origin_id: Any,
    pack: Any,
    max_size: int,
) -> tuple[str, UploadFile]:
    """Check upload fields before anything is stored.

    The id is an opaque label: any text value, including an empty one, is
    accepted as long as it fits in MAX_ID_BYTES.

    Raises:
        UploadValidationError: 400 for missing fields, 413 for oversized ones.
    """
    if not isinstance(origin_id, str):
        raise UploadValidationError("Missing id field", status_code=400)
    if len(origin_id.encode("utf-8")) > MAX_ID_BYTES:
        raise UploadValidationError(
            "id field too large", status_code=413, context={"limit": MAX_ID_BYTES}
        )
    if not isinstance(pack, UploadFile):
        raise UploadValidationError("Missing pack field", status_code=400)
    if pack.size is not None and pack.size > max_size:
        raise UploadValidationError(
            "Pack too large", status_code=413, context={"size": pack.size, "limit": max_size}
        )
    return origin_id, pack


def create_app(settings: Settings, service: PackService | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Effective settings.
        service: Pre-built service (tests inject one with a fake clock).

    Returns:
        App whose lifespan starts and stops the service.
    """
    pack_service = service or PackService(settings)
    manager = pack_service.manager

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await pack_service.start()
        try:
            yield
        finally:
            await pack_service.stop()

    app = FastAPI(title="packstore", version=__version__, lifespan=lifespan)
    app.state.service = pack_service

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        with log_context(request_id=generate_id("req"), client=_client_address(request)):
            return await call_next(request)

    @app.exception_handler(UploadValidationError)
    async def upload_validation_handler(
        request: Request, exc: UploadValidationError
    ) -> JSONResponse:
        logger.info("Rejected upload", reason=exc.message, status=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.post("/upload", response_model=UploadResponse)
    async def upload(request: Request) -> UploadResponse:
        """Register a pack and return its download link."""
        client = _client_address(request)
        logger.info("Received upload request")

        async with request.form() as form:
            origin_id, pack = validate_upload(
                form.get("id"), form.get("pack"), settings.request.max_size
            )
            data = await pack.read()
        if len(data) > settings.request.max_size:
            raise UploadValidationError(
                "Pack too large",
                status_code=413,
                context={"size": len(data), "limit": settings.request.max_size},
            )

        try:
            pack_hash = await manager.register(data, origin_id, client)
        except RegistrationError as e:
            logger.warning("Upload failed", error=str(e))
            raise HTTPException(status_code=503, detail="Storage unavailable") from e

        return UploadResponse(url=settings.server.download_url(pack_hash), sha1=pack_hash)

    @app.get("/pack.zip")
    async def download(
        pack_id: Annotated[Optional[str], Query(alias="id")] = None,
    ) -> FileResponse:
        """Stream a registered pack."""
        logger.info("Received download request")
        if pack_id is None:
            raise HTTPException(status_code=400, detail="Missing id parameter")

        path = await manager.fetch(pack_id)
        if path is None or not path.is_file():
            raise HTTPException(status_code=404, detail="Pack not found")

        logger.info("Sending pack", hash=pack_id)
        return FileResponse(path, media_type="application/zip")

    @app.get("/debug", response_class=PlainTextResponse)
    async def debug() -> str:
        logger.info("Received test request")
        return "It seems to be working..."

    return app
