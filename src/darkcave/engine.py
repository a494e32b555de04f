from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

from .action_engine import execute_action
from .catalog import GameRuleSet
from .cooldowns import CooldownTracker
from .helpers import HelperRegistry
from .models import ExecutionResult, LogEntry, StateTree, append_log, apply_delta, new_state_tree
from .production import catch_up, next_anchor

logger = logging.getLogger(__name__)

OPENING_MESSAGE = "A dark cave. The air is cold and stale. You can barely make out the shapes around you."


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Session:
    """One player's game: the state tree, its cooldowns and play time.

    All state mutation happens in the commit step of :meth:`execute`, after
    the executor has returned.
    """

    def __init__(
        self,
        rules: GameRuleSet,
        state: Optional[StateTree] = None,
        cooldowns: Optional[CooldownTracker] = None,
        clock: Optional[Callable[[], int]] = None,
        rng: Any = None,
        helpers: Optional[HelperRegistry] = None,
        play_time: int = 0,
    ):
        self.rules = rules
        self.state = state if state is not None else new_state_tree()
        self.cooldowns = cooldowns if cooldowns is not None else CooldownTracker()
        self.clock = clock or system_clock
        self.rng = rng if rng is not None else random.Random()
        self.helpers = helpers if helpers is not None else rules.helpers
        self.play_time = play_time
        self._last_seen: Optional[int] = None
        # start of the production interval not yet credited; None until known
        self.production_anchor: Optional[int] = None
        # top-level save keys this build does not understand, written back unchanged
        self.save_extra: Dict[str, Any] = {}

    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else now

    def tick(self, now: Optional[int] = None) -> int:
        """Accumulate play time up to ``now`` and return it."""
        now = self._now(now)
        if self._last_seen is not None and now > self._last_seen:
            self.play_time += now - self._last_seen
        self._last_seen = now
        return now

    def play_time_at(self, now: int) -> int:
        if self._last_seen is None or now <= self._last_seen:
            return self.play_time
        return self.play_time + now - self._last_seen

    def execute(self, action_id: str, now: Optional[int] = None) -> ExecutionResult:
        """Run an action and commit its result to this session."""
        now = self.tick(now)
        result = execute_action(
            self.rules,
            action_id,
            self.state,
            now,
            cooldowns=self.cooldowns,
            rng=self.rng,
            helpers=self.helpers,
            log_seq=len(self.state.get("log") or []),
        )
        if not result.success:
            logger.debug(f"Action {action_id} rejected: {result.reason.value} {result.missing}")
            return result

        self.state = apply_delta(self.state, result.state_delta)
        append_log(self.state, result.log_entries)
        if result.cooldown_until is not None:
            self.cooldowns.mark_used(action_id, now, result.cooldown_until - now)
        return result

    def list_eligible_actions(self, now: Optional[int] = None) -> List[Dict[str, Optional[int]]]:
        return self.rules.list_eligible(self.state, self.cooldowns, self._now(now))

    def list_cards(self, now: Optional[int] = None):
        return self.rules.list_cards(self.state, self.cooldowns, self._now(now))

    def get_remaining_cooldown(self, action_id: str, now: Optional[int] = None) -> int:
        return self.cooldowns.remaining(action_id, self._now(now))

    def catch_up(self, now: Optional[int] = None) -> List[LogEntry]:
        """Commit passive production accrued since the production anchor."""
        now = self._now(now)
        if self.production_anchor is None:
            self.production_anchor = now
            return []
        delta, entries = catch_up(self.state, now - self.production_anchor, now)
        self.production_anchor = next_anchor(self.production_anchor, now)
        if delta:
            self.state = apply_delta(self.state, delta)
            append_log(self.state, entries)
        return entries

    def restart(self, now: Optional[int] = None) -> None:
        """Throw away progress and start over on the same rule set."""
        now = self._now(now)
        logger.info("Restarting game")
        self.state = _opening_state(now)
        self.cooldowns.clear()
        self.play_time = 0
        self._last_seen = now
        self.production_anchor = now


def _opening_state(now: int) -> StateTree:
    state = new_state_tree()
    state["flags"]["gameStarted"] = True
    append_log(state, [LogEntry(f"start-{now}", OPENING_MESSAGE, now, "system")])
    return state


def new_game(
    rules: Optional[GameRuleSet] = None,
    seed: Optional[int] = None,
    clock: Optional[Callable[[], int]] = None,
    helpers: Optional[HelperRegistry] = None,
) -> Session:
    """Start a fresh session.

    Args:
        rules: Rule set to play; defaults to the bundled catalogs
        seed: Seed for the session RNG (None for an unseeded game)
        clock: Epoch-millisecond clock; defaults to wall-clock time
        helpers: Formula helpers; defaults to the rule set's
    """
    if rules is None:
        rules = GameRuleSet.from_directory()
    clock = clock or system_clock
    now = clock()
    session = Session(
        rules,
        state=_opening_state(now),
        clock=clock,
        rng=random.Random(seed),
        helpers=helpers,
    )
    session.production_anchor = now
    session.tick(now)
    return session
