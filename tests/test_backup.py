"""Tests for the backup tool."""

import sqlite3
import zipfile

import pytest

from universal_memory_mcp.backup_memory import (
    DB_ARCHIVE_NAME,
    MANIFEST_NAME,
    create_backup,
    get_backup_dir,
    list_backups,
    main,
)


def test_create_and_list(config, store, tmp_path):
    store.add_memory("backed up fact", context="x")
    store.add_todo("backed up todo")
    backup_dir = tmp_path / "backups"

    backup_path = create_backup(config, backup_dir, "nightly")

    with zipfile.ZipFile(backup_path) as zipf:
        assert sorted(zipf.namelist()) == sorted([DB_ARCHIVE_NAME, MANIFEST_NAME])
        zipf.extract(DB_ARCHIVE_NAME, tmp_path / "restored")

    restored = sqlite3.connect(str(tmp_path / "restored" / DB_ARCHIVE_NAME))
    try:
        assert restored.execute("SELECT content FROM memories").fetchall() == [("backed up fact",)]
    finally:
        restored.close()

    backups = list_backups(backup_dir)
    assert len(backups) == 1
    manifest = backups[0]["manifest"]
    assert manifest["description"] == "nightly"
    assert manifest["stats"] == {"total_memories": 1, "total_todos": 1}
    assert not any(p.name.startswith("temp_") for p in backup_dir.iterdir())


def test_missing_database(config, tmp_path):
    with pytest.raises(FileNotFoundError):
        create_backup(config, tmp_path / "backups")
    assert list((tmp_path / "backups").iterdir()) == []


def test_backup_dir_resolution(config, tmp_path, monkeypatch):
    monkeypatch.delenv("MEMORY_BACKUP_DIR", raising=False)
    assert get_backup_dir(config) == config.storage.path.parent / "universal-memory-backups"
    monkeypatch.setenv("MEMORY_BACKUP_DIR", str(tmp_path / "env"))
    assert get_backup_dir(config) == tmp_path / "env"
    assert get_backup_dir(config, str(tmp_path / "cli")) == tmp_path / "cli"


def test_cli_list_empty(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MEMORY_STORAGE_PATH", str(tmp_path / "m.db"))
    assert main(["--list", "--output", str(tmp_path / "none")]) == 0
    assert "No backups found" in capsys.readouterr().out
