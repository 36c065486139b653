"""
Storage backends for Universal Memory MCP
"""

from .sqlite_store import SQLiteStore

__all__ = ['SQLiteStore']
