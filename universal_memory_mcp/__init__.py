"""
Universal Memory MCP - persistent memories and todos for MCP clients
"""

__version__ = "1.0.0"

from .models import Memory, Todo, ProjectSummary, MemoryBankExport, MemoryStats, ScoredMemory
from .storage import SQLiteStore
from .memory_service import MemoryService, build_service

__all__ = [
    'Memory',
    'Todo',
    'ProjectSummary',
    'MemoryBankExport',
    'MemoryStats',
    'ScoredMemory',
    'SQLiteStore',
    'MemoryService',
    'build_service',
]
