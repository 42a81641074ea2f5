"""
Command-line interface for packstore.
"""
