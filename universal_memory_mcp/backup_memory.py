#!/usr/bin/env python3
"""
Backup Universal Memory MCP
Snapshots the SQLite database into a timestamped zip archive with a manifest
"""

import argparse
import json
import os
import shutil
import sqlite3
import sys
import traceback
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config, load_config
from .utils import resolve_path

DB_ARCHIVE_NAME = "universal-memories.db"
MANIFEST_NAME = "manifest.json"


def get_backup_dir(config: Config, override: Optional[str] = None) -> Path:
    """--output, then $MEMORY_BACKUP_DIR, then a folder beside the database"""
    value = override or os.getenv("MEMORY_BACKUP_DIR")
    if value:
        return resolve_path(value)
    return config.storage.path.parent / "universal-memory-backups"


def export_sqlite(db_path: Path, temp_dir: Path) -> Dict[str, Any]:
    """Copy the database with the SQLite online backup API and count its rows"""
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}")

    source = sqlite3.connect(str(db_path))
    target = sqlite3.connect(str(temp_dir / DB_ARCHIVE_NAME))
    try:
        source.backup(target)
        stats = {
            "total_memories": source.execute("SELECT COUNT(*) FROM memories").fetchone()[0],
            "total_todos": source.execute("SELECT COUNT(*) FROM todos").fetchone()[0],
        }
    finally:
        target.close()
        source.close()
    return stats


def create_backup(config: Config, backup_dir: Path, description: Optional[str] = None) -> Path:
    """Create backup archive"""
    backup_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    temp_dir = backup_dir / f"temp_{timestamp}"
    temp_dir.mkdir(exist_ok=True)

    try:
        sqlite_stats = export_sqlite(config.storage.path, temp_dir)

        manifest = {
            "timestamp": timestamp,
            "created_at": datetime.now().isoformat(),
            "description": description or "Memory system backup",
            "database": str(config.storage.path),
            "stats": sqlite_stats,
        }
        with open(temp_dir / MANIFEST_NAME, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2)

        backup_path = backup_dir / f"backup_{timestamp}.zip"
        with zipfile.ZipFile(backup_path, "w", zipfile.ZIP_DEFLATED) as zipf:
            for file in temp_dir.iterdir():
                zipf.write(file, file.name)
        return backup_path
    finally:
        if temp_dir.exists():
            shutil.rmtree(temp_dir)


def read_manifest(backup: Path) -> Optional[Dict[str, Any]]:
    try:
        with zipfile.ZipFile(backup, "r") as zipf:
            with zipf.open(MANIFEST_NAME) as f:
                return json.load(f)
    except (OSError, KeyError, ValueError, zipfile.BadZipFile):
        return None


def list_backups(backup_dir: Path) -> List[Dict[str, Any]]:
    """Newest first; manifest is None when the archive cannot be read"""
    if not backup_dir.exists():
        return []
    return [
        {"path": backup, "size": backup.stat().st_size, "manifest": read_manifest(backup)}
        for backup in sorted(backup_dir.glob("backup_*.zip"), reverse=True)
    ]


def print_backups(backup_dir: Path):
    backups = list_backups(backup_dir)
    if not backups:
        print(f"No backups found in {backup_dir}")
        return

    print(f"\nAvailable backups in {backup_dir}:\n")
    for entry in backups:
        size_mb = entry["size"] / (1024 * 1024)
        manifest = entry["manifest"]
        print(f"[BACKUP] {entry['path'].name}")
        print(f"   Size: {size_mb:.2f} MB")
        if manifest is None:
            print("   (Manifest not readable)")
        else:
            stats = manifest.get("stats", {})
            print(f"   Created: {manifest.get('created_at', 'Unknown')}")
            print(f"   Memories: {stats.get('total_memories', '?')}, Todos: {stats.get('total_todos', '?')}")
            print(f"   Description: {manifest.get('description', 'No description')}")
        print()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Backup Universal Memory MCP")
    parser.add_argument("--description", "-d", help="Backup description")
    parser.add_argument("--list", "-l", action="store_true", help="List available backups")
    parser.add_argument("--output", "-o", help="Backup directory")
    parser.add_argument("--config", "-c", help="Path to a JSON config file")

    args = parser.parse_args(argv)
    config = load_config(args.config)
    backup_dir = get_backup_dir(config, args.output)

    if args.list:
        print_backups(backup_dir)
        return 0

    print("=" * 60)
    print("Universal Memory MCP - Backup")
    print("=" * 60)
    print(f"Database: {config.storage.path}")
    print(f"Backup directory: {backup_dir}")
    print("=" * 60)

    try:
        backup_path = create_backup(config, backup_dir, args.description)
    except Exception as e:
        print(f"\n[FAILED] Backup failed: {e}")
        traceback.print_exc()
        return 1

    manifest = read_manifest(backup_path) or {}
    stats = manifest.get("stats", {})
    print("\n[SUCCESS] Backup created successfully!")
    print(f"  Location: {backup_path}")
    print(f"  Size: {backup_path.stat().st_size / (1024 * 1024):.2f} MB")
    print(f"  Memories: {stats.get('total_memories', 0)}")
    print(f"  Todos: {stats.get('total_todos', 0)}")
    return 0


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
