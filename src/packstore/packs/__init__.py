"""
Packs package.

This package coordinates the registry and blob store:
- PackManager: register, fetch, reconcile, shutdown under one lock
- PackCleaner: periodic reconcile loop
"""

from packstore.packs.cleaner import PackCleaner
from packstore.packs.manager import PackManager

__all__ = ["PackCleaner", "PackManager"]
