"""Eligibility checks for ``show_when`` requirements and tier selection."""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .state_paths import get_flag, get_number

if TYPE_CHECKING:
    from .content_specs import ActionSpec

_OPERATORS = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}
_OPERATOR_RE = re.compile(r"^\s*(>=|<=|==|!=|>|<)\s*(-?\d+(?:\.\d+)?)\s*$")


@dataclass(frozen=True)
class Requirement:
    """A single ``path -> requirement`` entry.

    Booleans compare by strict equality (missing reads False). Plain numbers
    are thresholds: satisfied once the stored value reaches them. Strings
    carry an explicit operator, e.g. ``"==0"`` or ``"<3"``.
    """
    op: str
    value: Any

    def describe(self, path: str) -> str:
        if self.op == "is":
            return f"{path}={str(self.value).lower()}"
        return f"{path}{self.op}{self.value}"


def parse_requirement(raw: Any) -> Requirement:
    if isinstance(raw, bool):
        return Requirement("is", raw)
    if isinstance(raw, (int, float)):
        return Requirement(">=", raw)
    if isinstance(raw, str):
        m = _OPERATOR_RE.match(raw)
        if m:
            number = float(m.group(2)) if "." in m.group(2) else int(m.group(2))
            return Requirement(m.group(1), number)
    raise ValueError(f"unsupported requirement {raw!r}")


def check_requirement(state: Dict[str, Any], path: str, req: Requirement) -> bool:
    if req.op == "is":
        return get_flag(state, path) == req.value
    return _OPERATORS[req.op](get_number(state, path), req.value)


def missing_requirements(
    state: Dict[str, Any],
    requirements: Dict[str, Requirement],
) -> List[str]:
    return [
        req.describe(path)
        for path, req in requirements.items()
        if not check_requirement(state, path, req)
    ]


def is_eligible(action: "ActionSpec", tier: int, state: Dict[str, Any]) -> bool:
    """True when every entry of the tier's ``show_when`` holds (implicit AND)."""
    requirements = action.show_when.for_tier(tier)
    return all(check_requirement(state, path, req) for path, req in requirements.items())


def active_tier(action: "ActionSpec", state: Dict[str, Any]) -> Optional[int]:
    """Highest tier whose ``show_when`` is satisfied, or None.

    Untiered actions have the single tier ``FLAT_TIER``.
    """
    for tier in sorted(action.tier_numbers(), reverse=True):
        if is_eligible(action, tier, state):
            return tier
    return None


def explain_ineligible(action: "ActionSpec", state: Dict[str, Any]) -> List[str]:
    """Unmet requirements of the lowest tier, for UI "why locked" hints."""
    tiers: Tuple[int, ...] = tuple(sorted(action.tier_numbers()))
    if not tiers:
        return []
    return missing_requirements(state, action.show_when.for_tier(tiers[0]))
