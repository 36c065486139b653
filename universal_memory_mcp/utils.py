"""
Validation and path helpers for Universal Memory MCP
"""

import math
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .exceptions import ValidationError
from .models import MIN_IMPORTANCE, MAX_IMPORTANCE


def resolve_path(value: str) -> Path:
    """Expand ~ and make relative paths absolute against the working directory"""
    path = Path(os.path.expanduser(value))
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def validate_memory_data(content: Any, importance: Any = None, context: Any = None) -> List[str]:
    errors = []
    if not isinstance(content, str) or not content.strip():
        errors.append("Content is required and must be a non-empty string")

    if importance is not None:
        try:
            number = float(importance)
        except (TypeError, ValueError):
            number = math.nan
        if isinstance(importance, bool) or not MIN_IMPORTANCE <= number <= MAX_IMPORTANCE:
            errors.append(f"Importance must be a number between {MIN_IMPORTANCE} and {MAX_IMPORTANCE}")

    if context is not None and not isinstance(context, str):
        errors.append("Context must be a string")
    return errors


def require_valid_memory(content: Any, importance: Any = None, context: Any = None):
    errors = validate_memory_data(content, importance, context)
    if errors:
        raise ValidationError(errors)


def require_choice(name: str, value: Any, choices: Iterable[str]):
    """Reject values outside an enumeration; None means "not given" and passes"""
    choices = tuple(choices)
    if value is not None and value not in choices:
        raise ValidationError(f"{name} must be one of: {', '.join(choices)}")


def require_string(name: str, value: Any):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required and must be a non-empty string")


def normalize_limit(value: Any, default: int, maximum: int) -> int:
    if value is None:
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    return max(1, min(maximum, limit))


def require_threshold(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        raise ValidationError("threshold must be a number between 0 and 1")
    return float(value)


def parse_since(value: Optional[str]) -> Optional[str]:
    """Normalise an ISO date/datetime to the local naive form stored in the database"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("since must be an ISO date string")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"since is not a valid ISO date: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed.isoformat()
