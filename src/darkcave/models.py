from __future__ import annotations

from copy import deepcopy
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import (
    BUILDING_NAMES,
    FLAG_NAMES,
    LOG_TYPES,
    RELIC_NAMES,
    RESOURCE_NAMES,
    STAT_NAMES,
    TOOL_NAMES,
    UPGRADE_KEYS,
    VILLAGER_NAMES,
    WEAPON_NAMES,
)

StateTree = Dict[str, Any]


class ErrorKind(str, Enum):
    """Expected, non-fatal reasons an action execution can fail."""
    UNKNOWN_ACTION = "UnknownAction"
    ON_COOLDOWN = "OnCooldown"
    NOT_ELIGIBLE = "NotEligible"
    INSUFFICIENT_RESOURCES = "InsufficientResources"
    EVALUATION_ERROR = "EvaluationError"


@dataclass
class LogEntry:
    id: str
    message: str
    timestamp: int
    type: str = "system"    # system/action/event/production

    def __post_init__(self) -> None:
        if self.type not in LOG_TYPES:
            raise ValueError(f"unknown log entry type: {self.type}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LogEntry":
        return cls(
            id=str(raw.get("id", "")),
            message=str(raw.get("message", "")),
            timestamp=int(raw.get("timestamp", 0)),
            type=raw.get("type", "system") if raw.get("type") in LOG_TYPES else "system",
        )


@dataclass
class ExecutionResult:
    """Outcome of one action execution.

    ``state_delta`` is a partial state tree holding the new absolute value of
    every touched path; the caller commits it with :func:`apply_delta`.
    """
    success: bool
    action_id: str
    reason: Optional[ErrorKind] = None
    state_delta: StateTree = field(default_factory=dict)
    log_entries: List[LogEntry] = field(default_factory=list)
    cooldown_until: Optional[int] = None
    tier: Optional[int] = None
    triggered_events: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @classmethod
    def failure(cls, action_id: str, reason: ErrorKind, missing: Optional[List[str]] = None) -> "ExecutionResult":
        return cls(success=False, action_id=action_id, reason=reason, missing=list(missing or []))


def _defaults(names: List[str], value: Any) -> Dict[str, Any]:
    return {name: value for name in names}


def new_state_tree() -> StateTree:
    """Create a fresh state tree with schema defaults."""
    return {
        "resources": _defaults(RESOURCE_NAMES, 0),
        "stats": _defaults(STAT_NAMES, 0),
        "flags": _defaults(FLAG_NAMES, False),
        "tools": _defaults(TOOL_NAMES, False),
        "weapons": _defaults(WEAPON_NAMES, False),
        "buildings": _defaults(BUILDING_NAMES, 0),
        "villagers": _defaults(VILLAGER_NAMES, 0),
        "story": {"seen": {}},
        "events": {},
        "relics": _defaults(RELIC_NAMES, False),
        "buttonUpgrades": _defaults(UPGRADE_KEYS, 0),
        "log": [],
    }


def merge_defaults(tree: StateTree) -> StateTree:
    """Return a copy of ``tree`` with absent schema fields filled in.

    Present values always win and unknown keys are kept.
    """
    merged = deepcopy(tree)
    for section, defaults in new_state_tree().items():
        current = merged.get(section)
        if isinstance(defaults, dict):
            if not isinstance(current, dict):
                merged[section] = defaults
                continue
            for key, value in defaults.items():
                if key not in current:
                    current[key] = value
                elif isinstance(value, dict) and isinstance(current[key], dict):
                    for sub_key, sub_value in value.items():
                        current[key].setdefault(sub_key, sub_value)
        elif section not in merged or not isinstance(current, list):
            merged[section] = defaults
    return merged


def apply_delta(tree: StateTree, delta: StateTree) -> StateTree:
    """Deep-merge ``delta`` into a copy of ``tree`` and return the copy."""
    out = deepcopy(tree)
    _merge_into(out, delta)
    return out


def _merge_into(target: Dict[str, Any], delta: Dict[str, Any]) -> None:
    for key, value in delta.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value)
        else:
            target[key] = deepcopy(value)


def append_log(tree: StateTree, entries: List[LogEntry]) -> None:
    """Append log entries in place. The engine never trims the log."""
    tree.setdefault("log", []).extend(e.to_dict() for e in entries)


def recent_log(tree: StateTree, limit: int) -> List[LogEntry]:
    return [LogEntry.from_dict(raw) for raw in (tree.get("log") or [])[-limit:]]
