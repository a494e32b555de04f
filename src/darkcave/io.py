"""Save/load of game sessions.

A save is a YAML mapping::

    gameState: <state tree>
    timestamp: <epoch ms of the save>
    playTime: <ms played>
    version: <schema version>
    cooldowns: {<action id>: <epoch ms ready at>}
    lastProductionAt: <epoch ms up to which villager production was credited>

Older saves are migrated forward one version at a time. Keys this version
does not know about are carried through unchanged.
"""

from __future__ import annotations

import logging
import math
import random
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import yaml

from .catalog import GameRuleSet
from .constants import SAVE_KEY, SCHEMA_VERSION
from .cooldowns import CooldownTracker
from .engine import Session, new_game, system_clock
from .errors import LoadError, MigrationError
from .models import StateTree, merge_defaults

logger = logging.getLogger(__name__)

KNOWN_KEYS = ("gameState", "timestamp", "playTime", "version", "cooldowns", "lastProductionAt")

# sections whose values are counters; anything else there breaks arithmetic
NUMERIC_SECTIONS = ("resources", "stats", "buildings", "villagers", "buttonUpgrades")


@dataclass
class SaveMetadata:
    timestamp: int = 0
    play_time: int = 0
    version: int = SCHEMA_VERSION
    cooldowns: Dict[str, int] = field(default_factory=dict)
    last_production_at: int = 0  # 0 when unknown; catch-up then starts at timestamp
    extra: Dict[str, Any] = field(default_factory=dict)  # unknown top-level keys


@dataclass
class LoadedGame:
    state: StateTree
    metadata: SaveMetadata


def serialize_save(state: StateTree, metadata: SaveMetadata) -> str:
    """Render a save as YAML text. Same input always yields the same text."""
    payload: Dict[str, Any] = deepcopy(metadata.extra)
    payload.update(
        {
            "gameState": deepcopy(state),
            "timestamp": int(metadata.timestamp),
            "playTime": int(metadata.play_time),
            "version": SCHEMA_VERSION,
            "cooldowns": dict(metadata.cooldowns),
            "lastProductionAt": int(metadata.last_production_at),
        }
    )
    return yaml.safe_dump(payload, default_flow_style=False, sort_keys=True)


def _migrate_v1_to_v2(payload: Dict[str, Any]) -> Dict[str, Any]:
    state = payload["gameState"]
    state.setdefault("relics", {})
    story = state.setdefault("story", {})
    if isinstance(story, dict):
        story.setdefault("seen", {})
    state.setdefault("buttonUpgrades", {})
    return payload


def _migrate_v2_to_v3(payload: Dict[str, Any]) -> Dict[str, Any]:
    # v2 stored seconds remaining at save time, v3 stores absolute ready times
    saved_at = payload.get("timestamp") or 0
    remaining = payload.get("cooldowns") or {}
    cooldowns = {}
    if isinstance(remaining, dict):
        for action_id, seconds in remaining.items():
            if isinstance(seconds, (int, float)) and not isinstance(seconds, bool) and seconds > 0:
                cooldowns[str(action_id)] = int(saved_at + seconds * 1000)
    payload["cooldowns"] = cooldowns
    return payload


# version -> migration producing version + 1
MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _migrate_v1_to_v2,
    2: _migrate_v2_to_v3,
}


def migrate(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Bring a parsed save up to ``SCHEMA_VERSION``.

    Raises:
        MigrationError: If the save was written by a newer schema
        LoadError: If the version field is not an integer
    """
    version = payload.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise LoadError(f"save version must be an integer, got {version!r}")
    if version > SCHEMA_VERSION:
        raise MigrationError(f"save version {version} is newer than supported version {SCHEMA_VERSION}")
    while version < SCHEMA_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            raise MigrationError(f"no migration from save version {version}")
        logger.info(f"Migrating save from version {version} to {version + 1}")
        payload = step(payload)
        version += 1
    payload["version"] = version
    return payload


def deserialize_save(text: str) -> LoadedGame:
    """Parse, migrate and default-fill a save.

    Raises:
        LoadError: If the text is not a readable save
        MigrationError: If the save is newer than this build understands
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise LoadError(f"save is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise LoadError("save must be a mapping")
    if not isinstance(raw.get("gameState"), dict):
        raise LoadError("save has no gameState mapping")

    payload = migrate(raw)
    _check_game_state(payload["gameState"])
    cooldowns = CooldownTracker.from_dict(payload.get("cooldowns"))
    metadata = SaveMetadata(
        timestamp=_as_int(payload.get("timestamp")),
        play_time=_as_int(payload.get("playTime")),
        version=payload["version"],
        cooldowns=cooldowns.to_dict(),
        last_production_at=_as_int(payload.get("lastProductionAt")),
        extra={k: v for k, v in payload.items() if k not in KNOWN_KEYS},
    )
    return LoadedGame(state=merge_defaults(payload["gameState"]), metadata=metadata)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_game_state(state: StateTree) -> None:
    """Reject trees whose log or counters would break readers after load."""
    log = state.get("log")
    if log is not None and not isinstance(log, list):
        raise LoadError(f"gameState.log must be a list, got {type(log).__name__}")
    for n, entry in enumerate(log or []):
        if not isinstance(entry, dict):
            raise LoadError(f"gameState.log[{n}] must be a mapping, got {entry!r}")
        ts = entry.get("timestamp", 0)
        if not _is_number(ts) or not math.isfinite(ts):
            raise LoadError(f"gameState.log[{n}].timestamp must be a finite number, got {ts!r}")

    for section in NUMERIC_SECTIONS:
        values = state.get(section)
        if not isinstance(values, dict):
            continue
        for name, value in values.items():
            if value is not None and not isinstance(value, (int, float)):
                raise LoadError(f"gameState.{section}.{name} must be a number, got {value!r}")


def _as_int(value: Any) -> int:
    if _is_number(value):
        return int(value)
    return 0


class SaveStore(Protocol):
    """Opaque key/value blob storage."""

    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, text: str) -> None: ...


class FileSaveStore:
    """Stores each save as ``<directory>/<key>.yaml``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.yaml"

    def read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise LoadError(f"{path}: {exc}") from exc

    def write(self, key: str, text: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class MemorySaveStore:
    def __init__(self):
        self.blobs: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def write(self, key: str, text: str) -> None:
        self.blobs[key] = text

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


def session_metadata(session: Session, now: int) -> SaveMetadata:
    """Snapshot what a save needs from the session without changing it."""
    live = {k: v for k, v in session.cooldowns.to_dict().items() if v > now}
    return SaveMetadata(
        timestamp=now,
        play_time=session.play_time_at(now),
        cooldowns=live,
        last_production_at=session.production_anchor if session.production_anchor is not None else now,
        extra=deepcopy(session.save_extra),
    )


def save_session(session: Session, store: SaveStore, key: str = SAVE_KEY, now: Optional[int] = None) -> str:
    """Write the session to ``store`` and return the text written."""
    now = session.clock() if now is None else now
    text = serialize_save(session.state, session_metadata(session, now))
    store.write(key, text)
    return text


def load_session(
    store: SaveStore,
    rules: GameRuleSet,
    key: str = SAVE_KEY,
    now: Optional[int] = None,
    clock: Optional[Callable[[], int]] = None,
    rng: Any = None,
) -> Optional[Session]:
    """Restore a session, applying passive production for the time away.

    Returns:
        The session, or None when nothing is saved under ``key``

    Raises:
        LoadError: If the stored save is corrupt
        MigrationError: If the stored save is newer than supported
    """
    text = store.read(key)
    if text is None:
        return None
    loaded = deserialize_save(text)
    clock = clock or system_clock
    now = clock() if now is None else now

    session = Session(
        rules,
        state=loaded.state,
        cooldowns=CooldownTracker(loaded.metadata.cooldowns),
        clock=clock,
        rng=rng,
        play_time=loaded.metadata.play_time,
    )
    session.save_extra = loaded.metadata.extra
    anchor = loaded.metadata.last_production_at or loaded.metadata.timestamp
    if anchor:
        session.production_anchor = anchor
    session.catch_up(now)
    session.tick(now)
    return session


def load_or_new(
    store: SaveStore,
    rules: GameRuleSet,
    key: str = SAVE_KEY,
    now: Optional[int] = None,
    clock: Optional[Callable[[], int]] = None,
    seed: Optional[int] = None,
) -> Tuple[Session, Optional[LoadError]]:
    """Load the saved session, falling back to a new game.

    Returns:
        Tuple of (session, error); error is set when a save existed but could
        not be loaded, so the caller can tell the player
    """
    try:
        session = load_session(store, rules, key, now=now, clock=clock, rng=random.Random(seed))
    except LoadError as exc:
        logger.warning(f"Save '{key}' could not be loaded, starting a new game: {exc}")
        return new_game(rules, seed=seed, clock=clock), exc
    if session is None:
        return new_game(rules, seed=seed, clock=clock), None
    return session, None
