"""Passive villager production, computed as a catch-up on elapsed time.

There is no background scheduler: the session calls :func:`catch_up` with the
wall-clock time elapsed since its production anchor when it loads, and commits
the returned delta like any action result. The anchor advances by whole
intervals only and is saved, so short sessions still add up.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from .constants import MAX_CATCH_UP_MS, PRODUCTION_INTERVAL_MS, UNLIMITED_RESOURCES, VILLAGER_PRODUCTION
from .helpers import get_resource_limit
from .models import LogEntry, StateTree
from .state_paths import get_number, set_path

logger = logging.getLogger(__name__)


def production_intervals(elapsed_ms: int) -> int:
    elapsed = max(0, min(int(elapsed_ms), MAX_CATCH_UP_MS))
    return elapsed // PRODUCTION_INTERVAL_MS


def next_anchor(anchor: int, now: int) -> int:
    """Where the next catch-up starts after catching up from ``anchor`` to ``now``.

    Only whole intervals move the anchor, so the partial remainder carries
    into the next catch-up. Time beyond ``MAX_CATCH_UP_MS`` is forfeited.
    """
    elapsed = now - anchor
    if elapsed <= 0:
        return now
    if elapsed > MAX_CATCH_UP_MS:
        return now - elapsed % PRODUCTION_INTERVAL_MS
    return anchor + production_intervals(elapsed) * PRODUCTION_INTERVAL_MS


def production_rates(state: StateTree) -> Dict[str, float]:
    """Per-interval gains for the current villager assignment."""
    rates: Dict[str, float] = {}
    for job, outputs in VILLAGER_PRODUCTION.items():
        workers = get_number(state, f"villagers.{job}")
        if workers <= 0:
            continue
        for path, amount in outputs.items():
            rates[path] = rates.get(path, 0) + amount * workers
    return rates


def catch_up(state: StateTree, elapsed_ms: int, now: int) -> Tuple[StateTree, List[LogEntry]]:
    """Production accrued over ``elapsed_ms`` (capped at ``MAX_CATCH_UP_MS``).

    Returns:
        Tuple of (state delta, log entries); both empty when nothing accrued
    """
    intervals = production_intervals(elapsed_ms)
    rates = production_rates(state)
    if intervals == 0 or not rates:
        return {}, []

    limit = get_resource_limit(state)
    delta: StateTree = {}
    gained: List[str] = []
    for path, rate in rates.items():
        current = get_number(state, path)
        new_value = current + rate * intervals
        if path.split(".")[-1] not in UNLIMITED_RESOURCES:
            new_value = min(new_value, max(limit, current))
        if new_value == current:
            continue
        if isinstance(new_value, float) and new_value.is_integer():
            new_value = int(new_value)
        set_path(delta, path, new_value)
        gained.append(f"+{new_value - current:g} {path.split('.')[-1]}")

    if not gained:
        return {}, []
    logger.debug(f"Catch-up of {intervals} production intervals: {gained}")
    message = "While you were away, the villagers gathered " + ", ".join(gained) + "."
    return delta, [LogEntry(f"production-{now}", message, now, "production")]
