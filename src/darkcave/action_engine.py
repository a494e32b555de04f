"""Data-driven action execution engine.

This module provides the core logic for validating, selecting tiers, paying
costs and applying effects for actions defined in the YAML catalogs. It is
pure: it reads the state tree it is given and returns an ExecutionResult whose
delta the caller commits.
"""

from __future__ import annotations

import logging
import random
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple

from .conditions import active_tier, explain_ineligible
from .constants import UNLIMITED_RESOURCES
from .content_specs import ActionSpec
from .cooldowns import CooldownTracker
from .errors import EvaluationError
from .expressions import EvalContext, resolve, resolve_effect
from .helpers import HelperRegistry, default_helpers, get_resource_limit
from .models import ErrorKind, ExecutionResult, LogEntry, StateTree
from .state_paths import get_number, get_path, set_path

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def validate_action_spec(
    state: StateTree,
    spec: ActionSpec,
) -> Tuple[Optional[int], List[str]]:
    """Select the active tier for an action.

    Args:
        state: Current state tree
        spec: Action specification

    Returns:
        Tuple of (tier or None when no tier is eligible, missing_requirements)
    """
    tier = active_tier(spec, state)
    if tier is None:
        return None, explain_ineligible(spec, state)
    return tier, []


def resolve_costs(spec: ActionSpec, tier: int, ctx: EvalContext) -> Dict[str, float]:
    """Resolve the tier's cost table to non-negative amounts per path."""
    costs: Dict[str, float] = {}
    for path, expr in spec.cost.for_tier(tier).items():
        amount = resolve(expr, ctx)
        if not _is_number(amount):
            raise EvaluationError(f"{spec.id}: cost {path} resolved to non-number {amount!r}")
        if amount < 0:
            raise EvaluationError(f"{spec.id}: cost {path} resolved to negative {amount}")
        costs[path] = _normalize(amount)
    return costs


def unaffordable_costs(state: StateTree, costs: Dict[str, float]) -> List[str]:
    return [
        f"need {amount} {path} (have {_normalize(get_number(state, path))})"
        for path, amount in costs.items()
        if get_number(state, path) < amount
    ]


def _capped_gain(working: StateTree, path: str, current: float, gain: float) -> float:
    """Apply the storage limit to a resource gain.

    Never lowers a stock that is already above the limit.
    """
    parts = path.split(".")
    if parts[0] != "resources" or gain <= 0 or parts[-1] in UNLIMITED_RESOURCES:
        return current + gain
    limit = get_resource_limit(working)
    return min(current + gain, max(limit, current))


class _Outcome:
    """Working copy plus bookkeeping for one execution."""

    def __init__(self, state: StateTree, action_id: str, now: int, log_seq: int = 0):
        self.working = deepcopy(state)
        self.action_id = action_id
        self.now = now
        self.log_seq = log_seq
        self.touched: List[str] = []
        self.log_entries: List[LogEntry] = []
        self.triggered: List[str] = []
        self.negative: List[str] = []

    def touch(self, path: str) -> None:
        if path not in self.touched:
            self.touched.append(path)

    def log(self, message: str, entry_type: str) -> None:
        entry_id = f"{self.action_id}-{self.now}-{self.log_seq + len(self.log_entries)}"
        self.log_entries.append(LogEntry(entry_id, message, self.now, entry_type))

    def delta(self) -> StateTree:
        out: StateTree = {}
        for path in self.touched:
            set_path(out, path, deepcopy(get_path(self.working, path)))
        return out


def apply_costs(outcome: _Outcome, costs: Dict[str, float]) -> None:
    for path, amount in costs.items():
        current = get_number(outcome.working, path)
        set_path(outcome.working, path, _normalize(current - amount))
        outcome.touch(path)


def _apply_value(outcome: _Outcome, path: str, value: Any) -> None:
    if _is_number(value):
        current = get_number(outcome.working, path)
        new_value = _capped_gain(outcome.working, path, current, value)
        if path.startswith("resources.") and new_value < 0:
            outcome.negative.append(f"{path} would drop to {_normalize(new_value)}")
        set_path(outcome.working, path, _normalize(new_value))
    else:
        set_path(outcome.working, path, value)
    outcome.touch(path)


def apply_outcome(outcome: _Outcome, spec: ActionSpec, tier: int, ctx: EvalContext) -> None:
    """Resolve and apply the tier's effects in declaration order.

    Numbers are added to the stored value, anything else is assigned.
    Formulas and conditions read the state as it was before the action, so
    sibling effects gated on the same condition fire together.
    """
    for path, effect in spec.effects.for_tier(tier).items():
        result = resolve_effect(effect, ctx)
        if not result.applied:
            continue
        _apply_value(outcome, path, result.value)
        if result.log_message:
            outcome.log(result.log_message, "event")
        if result.trigger_event:
            event_path = f"events.{result.trigger_event}"
            set_path(outcome.working, event_path, {"triggeredAt": outcome.now, "source": spec.id})
            outcome.touch(event_path)
            outcome.triggered.append(result.trigger_event)

    if spec.log_message:
        outcome.log(spec.log_message, "action")


def execute_action(
    rules: Any,
    action_id: str,
    state: StateTree,
    now: int,
    *,
    cooldowns: Optional[CooldownTracker] = None,
    rng: Any = None,
    helpers: Optional[HelperRegistry] = None,
    log_seq: int = 0,
) -> ExecutionResult:
    """Execute one action against ``state`` without mutating it.

    Args:
        rules: Action registry (``GameRuleSet`` or any mapping with ``get``)
        action_id: Action to execute
        state: Current state tree (read only)
        now: Current time in epoch milliseconds
        cooldowns: Tracker consulted for OnCooldown (read only)
        rng: Random source with ``random()`` and ``randint(a, b)``
        helpers: Named formula helpers
        log_seq: Sequence number of the first log entry; the session passes
            its log length so ids stay unique within a millisecond

    Returns:
        ExecutionResult; failures carry ``reason`` and an empty delta
    """
    spec = rules.get(action_id)
    if spec is None:
        return ExecutionResult.failure(action_id, ErrorKind.UNKNOWN_ACTION, ["unknown action"])

    if cooldowns is not None and not cooldowns.is_ready(action_id, now):
        remaining = cooldowns.remaining(action_id, now)
        return ExecutionResult.failure(action_id, ErrorKind.ON_COOLDOWN, [f"ready in {remaining}ms"])

    tier, missing = validate_action_spec(state, spec)
    if tier is None:
        return ExecutionResult.failure(action_id, ErrorKind.NOT_ELIGIBLE, missing)

    ctx = EvalContext(
        state=state,
        helpers=helpers if helpers is not None else default_helpers(),
        rng=rng if rng is not None else random.Random(),
    )
    try:
        costs = resolve_costs(spec, tier, ctx)
        missing = unaffordable_costs(state, costs)
        if missing:
            return ExecutionResult.failure(action_id, ErrorKind.INSUFFICIENT_RESOURCES, missing)

        outcome = _Outcome(state, action_id, now, log_seq)
        apply_costs(outcome, costs)
        apply_outcome(outcome, spec, tier, ctx)
    except EvaluationError as exc:
        logger.error(f"Evaluation failed for action {action_id}: {exc}")
        return ExecutionResult.failure(action_id, ErrorKind.EVALUATION_ERROR, [str(exc)])

    if outcome.negative:
        return ExecutionResult.failure(action_id, ErrorKind.INSUFFICIENT_RESOURCES, outcome.negative)

    return ExecutionResult(
        success=True,
        action_id=action_id,
        state_delta=outcome.delta(),
        log_entries=outcome.log_entries,
        cooldown_until=now + spec.cooldown_ms if spec.cooldown_ms > 0 else None,
        tier=tier if spec.tiered else None,
        triggered_events=outcome.triggered,
    )
