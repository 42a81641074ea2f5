"""
Registry package.

Tracks which packs exist, who uploaded them and when they were last used.
"""

from packstore.registry.index import RegistryIndex

__all__ = ["RegistryIndex"]
