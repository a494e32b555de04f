from __future__ import annotations

from typing import Any, Dict


class CooldownTracker:
    """Per-action "next eligible" timestamps in epoch milliseconds.

    Stores absolute ready times rather than remaining durations so a save
    taken mid-cooldown still blocks the action after reload.
    """

    def __init__(self, ready_at: Dict[str, int] | None = None):
        self._ready_at: Dict[str, int] = dict(ready_at or {})

    def is_ready(self, action_id: str, now: int) -> bool:
        return now >= self._ready_at.get(action_id, 0)

    def remaining(self, action_id: str, now: int) -> int:
        """Milliseconds left before the action is ready (0 when ready)."""
        return max(0, self._ready_at.get(action_id, 0) - now)

    def mark_used(self, action_id: str, now: int, duration_ms: int) -> None:
        if duration_ms <= 0:
            return
        self._ready_at[action_id] = max(self._ready_at.get(action_id, 0), now + duration_ms)

    def prune(self, now: int) -> None:
        """Forget cooldowns that have already elapsed."""
        self._ready_at = {k: v for k, v in self._ready_at.items() if v > now}

    def clear(self) -> None:
        self._ready_at.clear()

    def to_dict(self) -> Dict[str, int]:
        return dict(sorted(self._ready_at.items()))

    @classmethod
    def from_dict(cls, raw: Any) -> "CooldownTracker":
        if not isinstance(raw, dict):
            return cls()
        ready_at = {}
        for action_id, ts in raw.items():
            if isinstance(ts, (int, float)) and not isinstance(ts, bool):
                ready_at[str(action_id)] = int(ts)
        return cls(ready_at)
