"""Shared fixtures: a throw-away database per test, no Ollama, no git."""

import asyncio
from pathlib import Path

import pytest

from universal_memory_mcp.config import Config
from universal_memory_mcp.memory_service import MemoryService
from universal_memory_mcp.storage.sqlite_store import SQLiteStore


@pytest.fixture
def config(tmp_path: Path) -> Config:
    cfg = Config()
    cfg.storage.path = tmp_path / "memories.db"
    cfg.processing.auto_extract = False
    cfg.processing.repo_tagging = False
    return cfg


@pytest.fixture
def store(config: Config):
    s = SQLiteStore(config.storage.path, deduplication=True, dedup_threshold=0.9)
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def service(config: Config):
    svc = MemoryService(SQLiteStore(config.storage.path), config)
    asyncio.run(svc.startup())
    yield svc
    asyncio.run(svc.shutdown())
