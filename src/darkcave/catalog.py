from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .action_engine import validate_action_spec
from .content_specs import ActionSpec, load_actions
from .cooldowns import CooldownTracker
from .errors import CatalogError, EvaluationError
from .expressions import EvalContext, resolve
from .helpers import HelperRegistry, default_helpers
from .models import StateTree
from .state_paths import get_number

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data" / "actions"


@dataclass
class ActionCard:
    action_id: str
    label: str
    category: str
    available: bool
    tier: Optional[int] = None
    cost_text: str = ""
    cooldown_remaining_ms: int = 0
    why_locked: Optional[str] = None
    missing_requirements: List[str] = field(default_factory=list)


class GameRuleSet:
    """The merged, read-only action registry.

    Built once at startup from the sub-catalogs and handed to sessions.
    """

    def __init__(self, specs: Dict[str, ActionSpec], helpers: Optional[HelperRegistry] = None):
        self.specs = dict(specs)
        self.helpers = helpers if helpers is not None else default_helpers()

    @classmethod
    def from_catalogs(cls, catalogs: Iterable[Dict[str, ActionSpec]], **kwargs) -> "GameRuleSet":
        merged: Dict[str, ActionSpec] = {}
        for catalog in catalogs:
            for action_id, spec in catalog.items():
                if action_id in merged:
                    raise CatalogError(
                        f"duplicate action id '{action_id}' in categories "
                        f"'{merged[action_id].category}' and '{spec.category}'"
                    )
                merged[action_id] = spec
        return cls(merged, **kwargs)

    @classmethod
    def from_directory(cls, directory: Path = DATA_DIR, **kwargs) -> "GameRuleSet":
        """Load and merge every ``*.yaml`` sub-catalog in ``directory``."""
        directory = Path(directory)
        files = sorted(directory.glob("*.yaml"))
        if not files:
            logger.warning(f"No action catalogs found in {directory}, rule set is empty")
        return cls.from_catalogs((load_actions(f) for f in files), **kwargs)

    def get(self, action_id: str) -> Optional[ActionSpec]:
        return self.specs.get(action_id)

    def __contains__(self, action_id: str) -> bool:
        return action_id in self.specs

    def __iter__(self) -> Iterator[ActionSpec]:
        return iter(self.specs.values())

    def __len__(self) -> int:
        return len(self.specs)

    def list_eligible(
        self,
        state: StateTree,
        cooldowns: Optional[CooldownTracker] = None,
        now: int = 0,
    ) -> List[Dict[str, Optional[int]]]:
        """Actions whose show_when holds and that are not cooling down."""
        out = []
        for spec in self:
            if cooldowns is not None and not cooldowns.is_ready(spec.id, now):
                continue
            tier, _ = validate_action_spec(state, spec)
            if tier is None:
                continue
            out.append({"actionId": spec.id, "tier": tier if spec.tiered else None})
        return out

    def list_cards(
        self,
        state: StateTree,
        cooldowns: Optional[CooldownTracker] = None,
        now: int = 0,
    ) -> List[ActionCard]:
        """Every action the player can currently see, with why it is locked."""
        cards: List[ActionCard] = []
        for spec in self:
            tier, missing = validate_action_spec(state, spec)
            if tier is None:
                continue
            remaining = cooldowns.remaining(spec.id, now) if cooldowns is not None else 0
            cost_text, short = self._describe_costs(state, spec, tier)
            why = None
            if remaining > 0:
                why = "Cooling down"
            elif short:
                why = "Not enough resources"
                missing = short
            cards.append(
                ActionCard(
                    action_id=spec.id,
                    label=spec.label,
                    category=spec.category,
                    available=why is None,
                    tier=tier if spec.tiered else None,
                    cost_text=cost_text,
                    cooldown_remaining_ms=remaining,
                    why_locked=why,
                    missing_requirements=missing,
                )
            )
        return cards

    def _describe_costs(self, state: StateTree, spec: ActionSpec, tier: int) -> tuple[str, List[str]]:
        ctx = EvalContext(state=state, helpers=self.helpers, rng=random.Random())
        parts: List[str] = []
        short: List[str] = []
        for path, expr in spec.cost.for_tier(tier).items():
            try:
                amount = resolve(expr, ctx)
            except EvaluationError:
                parts.append(f"? {path}")
                continue
            name = path.split(".")[-1].replace("_", " ").title()
            parts.append(f"-{amount} {name}")
            if get_number(state, path) < amount:
                short.append(f"need {amount} {path}")
        return ", ".join(parts), short
