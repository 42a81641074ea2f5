"""
Storage package.

Content-addressed file storage for uploaded packs.
"""

from packstore.storage.blob_store import BlobStore

__all__ = ["BlobStore"]
