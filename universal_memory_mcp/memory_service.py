"""
Memory and todo service for Universal Memory MCP

Validates tool arguments, runs the optional enhancement and repository
tagging steps and delegates persistence to the injected SQLiteStore.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import Config
from .exceptions import ValidationError
from .export_formats import render_export
from .models import (
    Memory,
    Todo,
    ProjectSummary,
    MemoryBankExport,
    MemoryStats,
    ScoredMemory,
    DEFAULT_CONTEXT,
    DEFAULT_IMPORTANCE,
    TODO_STATUSES,
    TODO_PRIORITIES,
    EXPORT_FORMATS,
)
from .ollama_client import OllamaClient, fallback_extraction
from .repo_info import RepositoryInfo, detect_repository_info, enhance_with_repo_info
from .storage.sqlite_store import SQLiteStore
from .utils import (
    require_valid_memory,
    require_choice,
    require_string,
    require_threshold,
    normalize_limit,
    parse_since,
    validate_memory_data,
)

logger = logging.getLogger("universal-memory.service")

MAX_SEARCH_RESULTS = 20
MAX_LIST_RESULTS = 50
DEFAULT_TODO_LIMIT = 20


def _check_tags(tags: Any) -> Optional[List[str]]:
    if tags is None:
        return None
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("Tags must be an array of strings")
    return tags or None


class MemoryService:
    """Business logic shared by the stdio and HTTP transports"""

    def __init__(
        self,
        store: SQLiteStore,
        config: Config,
        enhancer: Optional[OllamaClient] = None,
        repo_detector: Callable[[], RepositoryInfo] = detect_repository_info,
    ):
        self.store = store
        self.config = config
        self.enhancer = enhancer
        self.repo_detector = repo_detector
        self.enhancer_available = False

    async def startup(self) -> bool:
        """Initialize the store and probe the enhancer; a failed probe is not fatal"""
        self.store.initialize()
        if self.enhancer is not None and self.config.processing.auto_extract:
            self.enhancer_available = await self.enhancer.test_connection()
            if not self.enhancer_available:
                logger.warning("Ollama unavailable; enhancement will fall back to original text")
        return self.enhancer_available

    async def shutdown(self):
        """Gracefully shutdown the service"""
        logger.info("Shutting down memory service...")
        if self.enhancer is not None:
            await self.enhancer.aclose()
        self.store.close()
        logger.info("Memory service shutdown complete")

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    async def add_memory(
        self,
        content: str,
        context: Optional[str] = None,
        importance: Optional[int] = None,
        project: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Memory:
        require_valid_memory(content, importance, context)
        tags = _check_tags(tags)
        importance = DEFAULT_IMPORTANCE if importance is None else importance

        stored_content = content
        original_content = None
        if self.enhancer is not None and self.config.processing.auto_extract:
            result = await self.enhancer.enhance_memory(content, context)
            if result.value != content:
                stored_content = result.value
                original_content = content

        fields = {"context": context, "project": project, "tags": tags}
        if self.config.processing.repo_tagging:
            fields = enhance_with_repo_info(fields, self.repo_detector())

        memory = self.store.add_memory(
            content=stored_content,
            context=fields["context"] or DEFAULT_CONTEXT,
            importance=importance,
            source="manual",
            original_content=original_content,
            project=fields["project"],
            category=category,
            tags=fields["tags"],
        )
        logger.info(f"Stored memory {memory.id} in context {memory.context}")
        return memory

    async def search_memories(
        self,
        query: str,
        limit: Optional[int] = None,
        context: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> List[ScoredMemory]:
        require_string("query", query)
        limit = normalize_limit(limit, self.config.processing.max_memories_per_query, MAX_SEARCH_RESULTS)
        if threshold is None:
            threshold = self.config.processing.similarity_threshold
        threshold = require_threshold(threshold)

        results = self.store.search_memories(query, limit=limit, context=context, threshold=threshold)

        if results and self.enhancer is not None and self.config.processing.llm_rerank:
            ranked = await self.enhancer.rank_memories(query, [r.memory for r in results], threshold)
            results = ranked.value[:limit]
        return results

    async def get_memories(
        self,
        context: Optional[str] = None,
        limit: Optional[int] = None,
        since: Optional[str] = None,
    ) -> List[Memory]:
        limit = normalize_limit(limit, 10, MAX_LIST_RESULTS)
        return self.store.get_memories(context=context, limit=limit, since=parse_since(since))

    async def get_memory(self, memory_id: str) -> Optional[Memory]:
        return self.store.get_memory_by_id(memory_id)

    async def extract_memories(self, text: str, context: Optional[str] = None) -> List[Memory]:
        """Turn free text into stored facts, one row per extracted fact"""
        require_string("text", text)
        context = context or "conversation"

        if self.enhancer is not None:
            facts = (await self.enhancer.extract_memories(text, context)).value
        else:
            facts = fallback_extraction(text, context)

        stored = []
        for fact in facts:
            stored.append(self.store.add_memory(
                content=fact.content,
                context=fact.context or context,
                importance=fact.importance,
                source="auto-extracted",
            ))
        logger.info(f"Extracted {len(stored)} memories from {len(text)} chars")
        return stored

    async def delete_memory(self, memory_id: str) -> bool:
        require_string("id", memory_id)
        return self.store.delete_memory(memory_id)

    async def list_projects(self) -> List[ProjectSummary]:
        return self.store.list_projects()

    async def list_project_files(self, project: str) -> List[str]:
        require_string("project", project)
        return self.store.list_project_files(project)

    async def update_memory_bank(
        self,
        project: str,
        memories: List[Dict[str, Any]],
        category: Optional[str] = None,
    ) -> List[Memory]:
        require_string("project", project)
        if not isinstance(memories, list):
            raise ValidationError("memories must be an array")

        errors = []
        for index, item in enumerate(memories):
            if not isinstance(item, dict):
                errors.append(f"memories[{index}] must be an object")
                continue
            errors.extend(f"memories[{index}]: {e}" for e in _item_errors(item))
        if errors:
            raise ValidationError(errors)

        return self.store.update_memory_bank(project, memories, category=category)

    async def export_memory_bank(
        self,
        format: str,
        project: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Tuple[MemoryBankExport, str]:
        """Return the export record and its rendering in the requested format"""
        require_choice("format", format, EXPORT_FORMATS)
        export = self.store.export_memory_bank(project=project, category=category, format=format)
        return export, render_export(export)

    async def get_stats(self) -> MemoryStats:
        return self.store.get_stats()

    # ------------------------------------------------------------------
    # Todos
    # ------------------------------------------------------------------

    async def add_todo(
        self,
        content: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        project: Optional[str] = None,
        context: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Todo:
        require_string("content", content)
        require_choice("status", status, TODO_STATUSES)
        require_choice("priority", priority, TODO_PRIORITIES)
        todo = self.store.add_todo(
            content=content,
            status=status or "pending",
            priority=priority or "medium",
            project=project,
            context=context,
            tags=_check_tags(tags),
        )
        logger.info(f"Added todo {todo.id}")
        return todo

    async def list_todos(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        project: Optional[str] = None,
        context: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Todo]:
        require_choice("status", status, TODO_STATUSES)
        require_choice("priority", priority, TODO_PRIORITIES)
        limit = normalize_limit(limit, DEFAULT_TODO_LIMIT, MAX_LIST_RESULTS)
        return self.store.list_todos(
            status=status, priority=priority, project=project, context=context, limit=limit
        )

    async def update_todo(self, todo_id: str, **updates) -> Optional[Todo]:
        require_string("id", todo_id)
        if "content" in updates and updates["content"] is not None:
            require_string("content", updates["content"])
        require_choice("status", updates.get("status"), TODO_STATUSES)
        require_choice("priority", updates.get("priority"), TODO_PRIORITIES)
        if "tags" in updates:
            _check_tags(updates["tags"])
        return self.store.update_todo(todo_id, updates)

    async def delete_todo(self, todo_id: str) -> bool:
        require_string("id", todo_id)
        return self.store.delete_todo(todo_id)


def build_service(config: Config) -> MemoryService:
    """Wire the store and the Ollama client from configuration"""
    store = SQLiteStore(
        config.storage.path,
        deduplication=config.storage.deduplication,
        dedup_threshold=config.storage.dedup_threshold,
    )
    enhancer = OllamaClient(config.ollama_url, config.ollama_model, timeout=config.ollama_timeout)
    return MemoryService(store, config, enhancer=enhancer)


def _item_errors(item: Dict[str, Any]) -> List[str]:
    errors = validate_memory_data(item.get("content"), item.get("importance"))
    try:
        _check_tags(item.get("tags"))
    except ValidationError as e:
        errors.extend(e.errors)
    return errors
