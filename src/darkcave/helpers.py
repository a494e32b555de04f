"""Named helper functions callable from catalog formulas.

A helper takes the current state tree plus any formula arguments and returns
a number, e.g. ``"5 + getBowHuntingBonus()"`` or
``"floor(random(3,5) * (1 + getUpgradeBonus('chopWood')))"``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional

from .constants import (
    BOW_HUNTING_FOOD,
    DEFAULT_RESOURCE_LIMIT,
    STORAGE_LIMITS,
    UPGRADE_LEVELS,
)
from .errors import EvaluationError
from .state_paths import get_flag, get_number

HelperFn = Callable[..., Any]


class HelperRegistry:
    def __init__(self, helpers: Optional[Dict[str, HelperFn]] = None):
        self._helpers: Dict[str, HelperFn] = dict(helpers or {})

    def register(self, name: str, fn: HelperFn) -> None:
        self._helpers[name] = fn

    def names(self) -> Iterable[str]:
        return self._helpers.keys()

    def __contains__(self, name: str) -> bool:
        return name in self._helpers

    def call(self, name: str, state: Dict[str, Any], *args: Any) -> Any:
        fn = self._helpers.get(name)
        if fn is None:
            raise EvaluationError(f"unknown helper function {name}()")
        try:
            return fn(state, *args)
        except EvaluationError:
            raise
        except (TypeError, ValueError, KeyError, ArithmeticError, AttributeError) as exc:
            raise EvaluationError(f"helper {name}() failed: {exc}") from exc


def get_resource_limit(state: Dict[str, Any]) -> int:
    """Storage cap from the highest storage building owned."""
    for building, limit in STORAGE_LIMITS:
        if get_number(state, f"buildings.{building}") > 0:
            return limit
    return DEFAULT_RESOURCE_LIMIT


def get_upgrade_bonus(state: Dict[str, Any], upgrade_key: str) -> float:
    """Bonus fraction earned by clicking an action often (5 clicks -> 5%, ...)."""
    clicks = get_number(state, f"buttonUpgrades.{upgrade_key}")
    bonus = 0.0
    for needed, level_bonus in UPGRADE_LEVELS:
        if clicks < needed:
            break
        bonus = level_bonus
    return bonus


def get_total_luck(state: Dict[str, Any]) -> float:
    luck = get_number(state, "stats.luck")
    if get_flag(state, "relics.tarnished_amulet"):
        luck += 5
    return luck


def get_bow_hunting_bonus(state: Dict[str, Any]) -> int:
    for bow, food in BOW_HUNTING_FOOD:
        if get_flag(state, f"weapons.{bow}"):
            return food
    return 0


def default_helpers() -> HelperRegistry:
    return HelperRegistry({
        "getResourceLimit": get_resource_limit,
        "getUpgradeBonus": get_upgrade_bonus,
        "getTotalLuck": get_total_luck,
        "getBowHuntingBonus": get_bow_hunting_bonus,
    })
