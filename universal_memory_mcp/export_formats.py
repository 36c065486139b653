"""
Memory bank export renderers (JSON, Markdown, CSV)
"""

import csv
import io
import json
from typing import Callable, Dict

from .models import MemoryBankExport

CSV_HEADERS = [
    "ID",
    "Content",
    "Project",
    "Category",
    "Context",
    "Importance",
    "Tags",
    "Source",
    "Created",
    "Updated",
]


def to_json(export: MemoryBankExport) -> str:
    return json.dumps(export.to_dict(), indent=2, ensure_ascii=False)


def to_markdown(export: MemoryBankExport) -> str:
    lines = ["# Memory Bank Export", ""]
    if export.project:
        lines.append(f"**Project:** {export.project}")
    if export.category:
        lines.append(f"**Category:** {export.category}")
    lines.append(f"**Exported:** {export.exported_at}")
    lines.append(f"**Total Memories:** {len(export.memories)}")
    lines.append("")

    for index, memory in enumerate(export.memories, start=1):
        lines.extend([f"## Memory {index}", "", f"**Content:** {memory.content}", ""])
        if memory.project:
            lines.append(f"**Project:** {memory.project}")
        if memory.category:
            lines.append(f"**Category:** {memory.category}")
        lines.append(f"**Context:** {memory.context}")
        lines.append(f"**Importance:** {memory.importance}/10")
        if memory.tags:
            lines.append(f"**Tags:** {', '.join(memory.tags)}")
        lines.append(f"**Created:** {memory.created_at}")
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def to_csv(export: MemoryBankExport) -> str:
    """Header row first, every field quoted, embedded quotes doubled"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for memory in export.memories:
        writer.writerow([
            memory.id,
            memory.content,
            memory.project or "",
            memory.category or "",
            memory.context,
            memory.importance,
            ", ".join(memory.tags) if memory.tags else "",
            memory.source,
            memory.created_at,
            memory.updated_at,
        ])
    return buffer.getvalue().rstrip("\n")


RENDERERS: Dict[str, Callable[[MemoryBankExport], str]] = {
    "json": to_json,
    "markdown": to_markdown,
    "csv": to_csv,
}


def render_export(export: MemoryBankExport) -> str:
    return RENDERERS[export.format](export)
