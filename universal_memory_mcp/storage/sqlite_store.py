"""
SQLite persistence store for Universal Memory MCP
"""

import sqlite3
import logging
import traceback
import uuid
from typing import List, Dict, Any, Optional
from datetime import datetime, timedelta
from pathlib import Path

from ..exceptions import StoreNotInitializedError
from ..models import (
    Memory,
    Todo,
    ProjectSummary,
    MemoryBankExport,
    MemoryStats,
    ContextCount,
    ScoredMemory,
    DEFAULT_CONTEXT,
    DEFAULT_IMPORTANCE,
    MEMORY_SOURCES,
    clamp_importance,
    dump_tags,
    now_iso,
)
from ..similarity import query_coverage

logger = logging.getLogger("universal-memory.sqlite")

# Most recent same-context rows considered when looking for a near duplicate
DEDUP_CANDIDATE_WINDOW = 5
DEDUP_PREFIX_LENGTH = 50

TODO_UPDATABLE_FIELDS = ("content", "status", "priority", "project", "context", "tags")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        original_content TEXT,
        context TEXT NOT NULL DEFAULT 'general',
        importance INTEGER NOT NULL DEFAULT 5,
        timestamp TEXT NOT NULL,
        source TEXT NOT NULL DEFAULT 'manual',
        project TEXT,
        category TEXT,
        tags TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS todos (
        id TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        priority TEXT NOT NULL DEFAULT 'medium',
        project TEXT,
        context TEXT,
        tags TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_context ON memories(context);
    CREATE INDEX IF NOT EXISTS idx_timestamp ON memories(timestamp DESC);
    CREATE INDEX IF NOT EXISTS idx_importance ON memories(importance DESC);
    CREATE INDEX IF NOT EXISTS idx_source ON memories(source);
    CREATE INDEX IF NOT EXISTS idx_project ON memories(project);
    CREATE INDEX IF NOT EXISTS idx_category ON memories(category);

    CREATE INDEX IF NOT EXISTS idx_todo_status ON todos(status);
    CREATE INDEX IF NOT EXISTS idx_todo_priority ON todos(priority);
    CREATE INDEX IF NOT EXISTS idx_todo_project ON todos(project);
    CREATE INDEX IF NOT EXISTS idx_todo_context ON todos(context);
"""


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text is matched literally (ESCAPE '\\')"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteStore:
    """Handles all SQLite database operations

    The store owns a single connection. Every public method is either one
    statement or one explicit transaction, so callers on a single event loop
    need no extra locking.
    """

    def __init__(self, db_path: Path, deduplication: bool = True, dedup_threshold: float = 0.9):
        self.db_path = Path(db_path)
        self.deduplication = deduplication
        self.dedup_threshold = dedup_threshold
        self.conn: Optional[sqlite3.Connection] = None
        self.error_log: List[Dict[str, Any]] = []

    def _log_error(self, operation: str, error: Exception):
        """Log detailed error information"""
        error_entry = {
            "timestamp": datetime.now().isoformat(),
            "operation": operation,
            "error_type": type(error).__name__,
            "error_msg": str(error),
            "traceback": traceback.format_exc(),
        }
        self.error_log.append(error_entry)
        if len(self.error_log) > 100:
            self.error_log = self.error_log[-100:]

    def _require_conn(self) -> sqlite3.Connection:
        if self.conn is None:
            raise StoreNotInitializedError()
        return self.conn

    @property
    def is_initialized(self) -> bool:
        return self.conn is not None

    def initialize(self):
        """Open the connection and create the schema if it does not exist"""
        if self.conn is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=30.0,
            isolation_level="IMMEDIATE",
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"SQLite initialization failed: {e}")
            self._log_error("sqlite_init", e)
            conn.close()
            raise

        self.conn = conn
        logger.info(f"SQLite initialized at {self.db_path}")

    def close(self):
        """Close database connection"""
        if self.conn is None:
            return
        try:
            self.conn.close()
            logger.info("SQLite connection closed")
        finally:
            self.conn = None

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    def _find_similar_memory(self, content: str, context: str) -> Optional[Memory]:
        conn = self._require_conn()
        prefix = escape_like(content[:DEDUP_PREFIX_LENGTH])
        rows = conn.execute(
            """
            SELECT * FROM memories
            WHERE context = ? AND content LIKE ? ESCAPE '\\'
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (context, f"%{prefix}%", DEDUP_CANDIDATE_WINDOW),
        ).fetchall()

        best: Optional[Memory] = None
        best_score = self.dedup_threshold
        for row in rows:
            score = query_coverage(content, row["content"])
            if score > best_score:
                best, best_score = Memory.from_row(row), score
        return best

    def add_memory(
        self,
        content: str,
        context: str = DEFAULT_CONTEXT,
        importance: int = DEFAULT_IMPORTANCE,
        source: str = "manual",
        original_content: Optional[str] = None,
        project: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Memory:
        """Insert a memory, or merge it into a near-duplicate in the same context"""
        conn = self._require_conn()
        if source not in MEMORY_SOURCES:
            raise ValueError(f"Unknown memory source: {source!r}")
        context = context or DEFAULT_CONTEXT
        importance = clamp_importance(importance)

        if self.deduplication:
            existing = self._find_similar_memory(content, context)
            if existing:
                existing.content = content
                existing.importance = max(existing.importance, importance)
                existing.updated_at = now_iso()
                with conn:
                    conn.execute(
                        "UPDATE memories SET content = ?, importance = ?, updated_at = ? WHERE id = ?",
                        (existing.content, existing.importance, existing.updated_at, existing.id),
                    )
                logger.debug(f"Merged duplicate memory into {existing.id}")
                return existing

        timestamp = now_iso()
        memory = Memory(
            id=str(uuid.uuid4()),
            content=content,
            context=context,
            importance=importance,
            timestamp=timestamp,
            source=source,
            original_content=original_content,
            project=project,
            category=category,
            tags=list(tags) if tags else None,
        )
        with conn:
            self._insert_memory(conn, memory)
        return memory

    def _insert_memory(self, conn: sqlite3.Connection, memory: Memory):
        conn.execute(
            """
            INSERT INTO memories
            (id, content, original_content, context, importance, timestamp, source,
             project, category, tags, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                memory.id, memory.content, memory.original_content, memory.context,
                memory.importance, memory.timestamp, memory.source, memory.project,
                memory.category, dump_tags(memory.tags), memory.created_at, memory.updated_at,
            ),
        )

    def search_memories(
        self,
        query: str,
        limit: int = 10,
        context: Optional[str] = None,
        threshold: float = 0.1,
    ) -> List[ScoredMemory]:
        """Token LIKE prefilter, then query-coverage scoring and ranking"""
        conn = self._require_conn()
        tokens = query.lower().split() if isinstance(query, str) else []
        if not tokens:
            return []

        clauses = " OR ".join("LOWER(content) LIKE ? ESCAPE '\\'" for _ in tokens)
        sql = f"SELECT * FROM memories WHERE ({clauses})"
        params: List[Any] = [f"%{escape_like(token)}%" for token in tokens]
        if context:
            sql += " AND context = ?"
            params.append(context)

        scored = []
        for row in conn.execute(sql, params).fetchall():
            score = query_coverage(query, row["content"])
            if score >= threshold:
                scored.append(ScoredMemory(memory=Memory.from_row(row), similarity=score))

        scored.sort(
            key=lambda s: (s.similarity, s.memory.importance, s.memory.created_at),
            reverse=True,
        )
        return scored[:limit]

    def get_memories(
        self,
        context: Optional[str] = None,
        limit: int = 10,
        since: Optional[str] = None,
    ) -> List[Memory]:
        conn = self._require_conn()
        sql = "SELECT * FROM memories WHERE 1=1"
        params: List[Any] = []
        if context:
            sql += " AND context = ?"
            params.append(context)
        if since:
            sql += " AND timestamp >= ?"
            params.append(since)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return [Memory.from_row(row) for row in conn.execute(sql, params).fetchall()]

    def get_memory_by_id(self, memory_id: str) -> Optional[Memory]:
        """Retrieve memory by ID"""
        conn = self._require_conn()
        row = conn.execute("SELECT * FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return Memory.from_row(row) if row else None

    def delete_memory(self, memory_id: str) -> bool:
        conn = self._require_conn()
        with conn:
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
        return cursor.rowcount > 0

    def list_projects(self) -> List[ProjectSummary]:
        conn = self._require_conn()
        rows = conn.execute(
            """
            SELECT project,
                   COUNT(*) AS total_memories,
                   GROUP_CONCAT(DISTINCT category) AS categories,
                   MAX(updated_at) AS last_updated
            FROM memories
            WHERE project IS NOT NULL
            GROUP BY project
            ORDER BY last_updated DESC
            """
        ).fetchall()
        return [
            ProjectSummary(
                project=row["project"],
                total_memories=row["total_memories"],
                categories=sorted(row["categories"].split(",")) if row["categories"] else [],
                last_updated=row["last_updated"],
            )
            for row in rows
        ]

    def list_project_files(self, project: str) -> List[str]:
        conn = self._require_conn()
        rows = conn.execute(
            """
            SELECT DISTINCT category FROM memories
            WHERE project = ? AND category IS NOT NULL
            ORDER BY category
            """,
            (project,),
        ).fetchall()
        return [row["category"] for row in rows]

    def update_memory_bank(
        self,
        project: str,
        memories: List[Dict[str, Any]],
        category: Optional[str] = None,
    ) -> List[Memory]:
        """Insert a batch of memories for a project atomically"""
        conn = self._require_conn()
        context = category or DEFAULT_CONTEXT
        stored: List[Memory] = []

        conn.execute("BEGIN IMMEDIATE")
        try:
            for item in memories:
                memory = Memory(
                    id=str(uuid.uuid4()),
                    content=item["content"],
                    context=context,
                    importance=clamp_importance(item.get("importance", DEFAULT_IMPORTANCE)),
                    timestamp=now_iso(),
                    source="manual",
                    project=project,
                    category=category,
                    tags=item.get("tags") or None,
                )
                self._insert_memory(conn, memory)
                stored.append(memory)
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Memory bank update failed for project {project}: {e}")
            self._log_error("update_memory_bank", e)
            raise

        logger.info(f"Memory bank for project {project} updated with {len(stored)} memories")
        return stored

    def export_memory_bank(
        self,
        project: Optional[str] = None,
        category: Optional[str] = None,
        format: str = "json",
    ) -> MemoryBankExport:
        conn = self._require_conn()
        sql = "SELECT * FROM memories WHERE 1=1"
        params: List[Any] = []
        if project:
            sql += " AND project = ?"
            params.append(project)
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY created_at DESC"
        memories = [Memory.from_row(row) for row in conn.execute(sql, params).fetchall()]
        return MemoryBankExport(
            format=format,
            exported_at=now_iso(),
            memories=memories,
            project=project,
            category=category,
        )

    def get_stats(self) -> MemoryStats:
        conn = self._require_conn()
        row = conn.execute(
            """
            SELECT COUNT(*) AS total,
                   COUNT(DISTINCT context) AS contexts,
                   AVG(importance) AS avg_importance,
                   MAX(timestamp) AS latest
            FROM memories
            """
        ).fetchone()
        context_rows = conn.execute(
            "SELECT context, COUNT(*) AS count FROM memories GROUP BY context ORDER BY count DESC, context"
        ).fetchall()
        return MemoryStats(
            total_memories=row["total"],
            unique_contexts=row["contexts"],
            avg_importance=round(row["avg_importance"] or 0.0, 2),
            latest_memory=row["latest"],
            contexts=[ContextCount(context=r["context"], count=r["count"]) for r in context_rows],
        )

    # ------------------------------------------------------------------
    # Todos
    # ------------------------------------------------------------------

    def add_todo(
        self,
        content: str,
        status: str = "pending",
        priority: str = "medium",
        project: Optional[str] = None,
        context: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Todo:
        conn = self._require_conn()
        now = now_iso()
        todo = Todo(
            id=str(uuid.uuid4()),
            content=content,
            status=status,
            priority=priority,
            project=project,
            context=context,
            tags=list(tags) if tags else None,
            created_at=now,
            updated_at=now,
        )
        with conn:
            conn.execute(
                """
                INSERT INTO todos (id, content, status, priority, project, context, tags, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    todo.id, todo.content, todo.status, todo.priority, todo.project,
                    todo.context, dump_tags(todo.tags), todo.created_at, todo.updated_at,
                ),
            )
        return todo

    def list_todos(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        project: Optional[str] = None,
        context: Optional[str] = None,
        limit: int = 20,
    ) -> List[Todo]:
        conn = self._require_conn()
        sql = "SELECT * FROM todos WHERE 1=1"
        params: List[Any] = []
        for column, value in (("status", status), ("priority", priority),
                              ("project", project), ("context", context)):
            if value:
                sql += f" AND {column} = ?"
                params.append(value)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return [Todo.from_row(row) for row in conn.execute(sql, params).fetchall()]

    def get_todo_by_id(self, todo_id: str) -> Optional[Todo]:
        conn = self._require_conn()
        row = conn.execute("SELECT * FROM todos WHERE id = ?", (todo_id,)).fetchone()
        return Todo.from_row(row) if row else None

    def update_todo(self, todo_id: str, updates: Dict[str, Any]) -> Optional[Todo]:
        """Patch the given fields; updated_at always moves forward"""
        conn = self._require_conn()
        current = self.get_todo_by_id(todo_id)
        if current is None:
            return None

        for key in TODO_UPDATABLE_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(current, key, list(updates[key]) if key == "tags" else updates[key])

        now = datetime.now()
        previous = datetime.fromisoformat(current.updated_at)
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        current.updated_at = now.isoformat()

        with conn:
            conn.execute(
                """
                UPDATE todos
                SET content = ?, status = ?, priority = ?, project = ?, context = ?, tags = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    current.content, current.status, current.priority, current.project,
                    current.context, dump_tags(current.tags), current.updated_at, todo_id,
                ),
            )
        return current

    def delete_todo(self, todo_id: str) -> bool:
        conn = self._require_conn()
        with conn:
            cursor = conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
        return cursor.rowcount > 0
