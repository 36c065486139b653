"""
Data models for Universal Memory MCP
"""

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, List, Dict, Optional

MEMORY_SOURCES = ("manual", "auto-extracted")
TODO_STATUSES = ("pending", "in_progress", "completed")
TODO_PRIORITIES = ("low", "medium", "high")
EXPORT_FORMATS = ("json", "markdown", "csv")

DEFAULT_CONTEXT = "general"
DEFAULT_IMPORTANCE = 5
MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10


def clamp_importance(value: Any, default: int = DEFAULT_IMPORTANCE) -> int:
    """Coerce importance into the 1-10 range, falling back to default when unusable"""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        number = default
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, number))


def now_iso() -> str:
    return datetime.now().isoformat()


def _load_tags(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    try:
        tags = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return tags if isinstance(tags, list) else None


def dump_tags(tags: Optional[List[str]]) -> Optional[str]:
    return json.dumps(list(tags)) if tags else None


@dataclass
class Memory:
    id: str
    content: str
    context: str
    importance: int
    timestamp: str
    source: str = "manual"
    original_content: Optional[str] = None
    project: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        if not self.context:
            self.context = DEFAULT_CONTEXT
        self.importance = clamp_importance(self.importance)
        if not self.created_at:
            self.created_at = self.timestamp
        if not self.updated_at:
            self.updated_at = self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row) -> 'Memory':
        """Convert SQLite row to Memory object

        Args:
            row: sqlite3.Row object with keys() method

        Returns:
            Memory instance
        """
        return cls(
            id=row["id"],
            content=row["content"],
            context=row["context"],
            importance=row["importance"],
            timestamp=row["timestamp"],
            source=row["source"] or "manual",
            original_content=row["original_content"],
            project=row["project"],
            category=row["category"],
            tags=_load_tags(row["tags"]),
            created_at=row["created_at"] or row["timestamp"],
            updated_at=row["updated_at"] or row["timestamp"],
        )


@dataclass
class ScoredMemory:
    """A memory paired with its relevance score for a query"""
    memory: Memory
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        data = self.memory.to_dict()
        data["similarity"] = self.similarity
        return data


@dataclass
class Todo:
    id: str
    content: str
    status: str = "pending"
    priority: str = "medium"
    project: Optional[str] = None
    context: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row) -> 'Todo':
        return cls(
            id=row["id"],
            content=row["content"],
            status=row["status"],
            priority=row["priority"],
            project=row["project"] or None,
            context=row["context"] or None,
            tags=_load_tags(row["tags"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class ProjectSummary:
    """Per-project aggregate derived from the memories table"""
    project: str
    total_memories: int
    categories: List[str]
    last_updated: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MemoryBankExport:
    format: str
    exported_at: str
    memories: List[Memory]
    project: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project,
            "category": self.category,
            "format": self.format,
            "exported_at": self.exported_at,
            "memories": [m.to_dict() for m in self.memories],
        }


@dataclass
class ContextCount:
    context: str
    count: int


@dataclass
class MemoryStats:
    total_memories: int
    unique_contexts: int
    avg_importance: float
    latest_memory: Optional[str]
    contexts: List[ContextCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExtractedMemory:
    """Candidate fact returned by the extraction collaborator"""
    content: str
    context: Optional[str] = None
    importance: int = DEFAULT_IMPORTANCE

    def __post_init__(self):
        self.importance = clamp_importance(self.importance)
