"""
packstore - content-addressed pack hosting with inactivity-based cleanup.
"""

__version__ = "0.1.0"
