"""Tests for configuration loading."""

import json
from pathlib import Path

from universal_memory_mcp.config import load_config


class TestConfig:
    def test_defaults(self):
        config = load_config(env={})
        assert config.storage.path == Path.home() / "universal-memories.db"
        assert config.storage.deduplication is True
        assert config.storage.dedup_threshold == 0.9
        assert config.processing.similarity_threshold == 0.8
        assert config.processing.max_memories_per_query == 10
        assert config.ollama_url == "http://localhost:11434"
        assert config.ollama_model == "llama3.1:8b"
        assert config.ollama_timeout is None
        assert config.logging.level == "INFO"
        assert config.logging.file is None

    def test_env_override(self, tmp_path: Path):
        env = {
            "MEMORY_STORAGE_PATH": str(tmp_path / "m.db"),
            "OLLAMA_MODEL": "mistral",
            "OLLAMA_TIMEOUT": "12.5",
            "MEMORY_DEDUPLICATION": "false",
            "MEMORY_MAX_RESULTS": "3",
            "LOG_LEVEL": "debug",
        }
        config = load_config(env=env)
        assert config.storage.path == tmp_path / "m.db"
        assert config.ollama_model == "mistral"
        assert config.ollama_timeout == 12.5
        assert config.storage.deduplication is False
        assert config.processing.max_memories_per_query == 3
        assert config.logging.level == "DEBUG"

    def test_bad_values_are_ignored(self):
        config = load_config(env={"MEMORY_MAX_RESULTS": "lots", "MEMORY_AUTO_EXTRACT": "maybe"})
        assert config.processing.max_memories_per_query == 10
        assert config.processing.auto_extract is True

    def test_json_file(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "ollama_model": "phi3",
            "storage": {"path": "~/custom.db"},
            "processing": {"similarity_threshold": 0.5},
        }))
        config = load_config(str(path), env={})
        assert config.ollama_model == "phi3"
        assert config.storage.path == Path.home() / "custom.db"
        assert config.processing.similarity_threshold == 0.5

    def test_env_overrides_file(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"ollama_model": "phi3"}))
        config = load_config(env={"UNIVERSAL_MEMORY_CONFIG": str(path), "OLLAMA_MODEL": "mistral"})
        assert config.ollama_model == "mistral"

    def test_relative_path_resolves_against_cwd(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(env={"MEMORY_STORAGE_PATH": "data/m.db", "LOG_FILE": "logs/mem.log"})
        assert config.storage.path == tmp_path / "data" / "m.db"
        assert config.logging.file == tmp_path / "logs" / "mem.log"

    def test_missing_file_uses_defaults(self, tmp_path: Path):
        config = load_config(str(tmp_path / "absent.json"), env={})
        assert config.ollama_model == "llama3.1:8b"
