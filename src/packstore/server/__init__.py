"""
HTTP transport for packstore.
"""

from packstore.server.app import create_app

__all__ = ["create_app"]
