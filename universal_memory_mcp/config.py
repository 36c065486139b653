"""
Configuration for Universal Memory MCP

Defaults, then an optional JSON file, then environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .utils import resolve_path

logger = logging.getLogger("universal-memory.config")

CONFIG_ENV = "UNIVERSAL_MEMORY_CONFIG"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class StorageConfig:
    path: Path = field(default_factory=lambda: Path.home() / "universal-memories.db")
    deduplication: bool = True
    dedup_threshold: float = 0.9


@dataclass
class ProcessingConfig:
    auto_extract: bool = True
    similarity_threshold: float = 0.8
    max_memories_per_query: int = 10
    repo_tagging: bool = True
    llm_rerank: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[Path] = None


@dataclass
class Config:
    storage: StorageConfig = field(default_factory=StorageConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:8b"
    ollama_timeout: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["storage"]["path"] = str(self.storage.path)
        data["logging"]["file"] = str(self.logging.file) if self.logging.file else None
        return data


def _parse_bool(name: str, raw: str, default: bool) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning(f"Ignoring {name}={raw!r}: expected a boolean")
    return default


def _apply_section(target, values: Mapping[str, Any]):
    for key, value in values.items():
        if hasattr(target, key):
            setattr(target, key, value)
        else:
            logger.warning(f"Unknown config key: {key}")


def _load_file(config: Config, path: Path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load config file {path}, using defaults: {e}")
        return

    for section in ("storage", "processing", "logging"):
        if isinstance(data.get(section), dict):
            _apply_section(getattr(config, section), data[section])
    for key in ("ollama_url", "ollama_model", "ollama_timeout"):
        if key in data:
            setattr(config, key, data[key])


# env var -> (section or None, field, parser)
ENV_OVERRIDES = {
    "MEMORY_STORAGE_PATH": ("storage", "path", str),
    "MEMORY_DEDUPLICATION": ("storage", "deduplication", bool),
    "MEMORY_DEDUP_THRESHOLD": ("storage", "dedup_threshold", float),
    "OLLAMA_URL": (None, "ollama_url", str),
    "OLLAMA_MODEL": (None, "ollama_model", str),
    "OLLAMA_TIMEOUT": (None, "ollama_timeout", float),
    "MEMORY_AUTO_EXTRACT": ("processing", "auto_extract", bool),
    "MEMORY_SIMILARITY_THRESHOLD": ("processing", "similarity_threshold", float),
    "MEMORY_MAX_RESULTS": ("processing", "max_memories_per_query", int),
    "MEMORY_REPO_TAGGING": ("processing", "repo_tagging", bool),
    "MEMORY_LLM_RERANK": ("processing", "llm_rerank", bool),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_FILE": ("logging", "file", str),
}


def _apply_env(config: Config, env: Mapping[str, str]):
    for name, (section, attr, parser) in ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        target = getattr(config, section) if section else config
        if parser is bool:
            setattr(target, attr, _parse_bool(name, raw, getattr(target, attr)))
            continue
        try:
            setattr(target, attr, parser(raw))
        except ValueError:
            logger.warning(f"Ignoring {name}={raw!r}: expected {parser.__name__}")


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Config:
    """Build the process configuration.

    Args:
        path: JSON config file; falls back to $UNIVERSAL_MEMORY_CONFIG
        env: environment mapping, os.environ by default

    Returns:
        Config with storage and log paths resolved to absolute paths
    """
    env = os.environ if env is None else env
    config = Config()

    path = path or env.get(CONFIG_ENV)
    if path:
        _load_file(config, resolve_path(path))

    _apply_env(config, env)

    config.storage.path = resolve_path(str(config.storage.path))
    if config.logging.file:
        config.logging.file = resolve_path(str(config.logging.file))
    config.logging.level = str(config.logging.level).upper()
    return config
