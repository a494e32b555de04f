"""Dotted-path access into the state tree.

Paths such as ``"resources.wood"`` or ``"story.seen.hasWood"`` address nested
mapping keys. A missing path reads as ``None``; callers coerce it with
:func:`get_number` (0) or :func:`get_flag` (False) instead of failing.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def split_path(path: str) -> List[str]:
    parts = path.split(".")
    if not path or any(not p for p in parts):
        raise ValueError(f"invalid state path: {path!r}")
    return parts


def get_path(tree: Dict[str, Any], path: str) -> Optional[Any]:
    """Read the value at ``path``, or ``None`` when any segment is absent."""
    current: Any = tree
    for part in split_path(path):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_path(tree: Dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at ``path`` in place, creating intermediate mappings.

    A non-mapping value sitting where an intermediate mapping is needed is
    replaced by an empty mapping.
    """
    parts = split_path(path)
    current = tree
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def get_number(tree: Dict[str, Any], path: str) -> float:
    """Numeric read: missing, ``None`` and booleans coerce to numbers (0/1)."""
    value = get_path(tree, path)
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    return 0


def get_flag(tree: Dict[str, Any], path: str) -> bool:
    """Boolean read: missing reads as False, anything else by truthiness."""
    return bool(get_path(tree, path))
