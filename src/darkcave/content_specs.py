"""Content specification loaders for the data-driven action catalog.

This module provides data structures and loaders for:
- ActionSpec: an action with eligibility, cost, effects, unlocks and cooldown
- RuleTable: a flat or tier-indexed mapping, normalized at load time
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml
from yaml.nodes import MappingNode, ScalarNode, SequenceNode

from .conditions import parse_requirement
from .errors import CatalogError, EvaluationError
from .expressions import compile_effect, compile_value
from .state_paths import split_path

# Tier number used for actions whose tables are not tier-indexed
FLAT_TIER = 0


@dataclass(frozen=True)
class RuleTable:
    """A ``show_when``/``cost``/``effects`` table.

    Catalog files write these either flat (``{path: value}``) or tiered
    (``{1: {path: value}, 2: {...}}``). Both shapes are normalized here so
    callers only ever ask for the mapping of a given tier.

    Attributes:
        tiered: Whether the catalog wrote this table tier-indexed
        tiers: Tier number to compiled ``{path: value}`` mapping
    """
    tiered: bool = False
    tiers: Dict[int, Dict[str, Any]] = field(default_factory=dict)

    def for_tier(self, tier: int) -> Dict[str, Any]:
        if not self.tiered:
            return self.tiers.get(FLAT_TIER, {})
        return self.tiers.get(tier, {})


@dataclass(frozen=True)
class ActionSpec:
    """Specification for a data-driven action.

    Attributes:
        id: Unique action identifier
        label: Human-readable action name
        category: Sub-catalog the action came from (forest, cave, ...)
        show_when: Requirements, flat or per tier
        cost: Amounts deducted before effects, flat or per tier
        effects: Effect values applied in declaration order, flat or per tier
        unlocks: Action ids that may become reachable (informational)
        cooldown: Seconds before the action can run again
        log_message: Narrative text logged on every successful execution
    """
    id: str
    label: str
    category: str
    show_when: RuleTable
    cost: RuleTable
    effects: RuleTable
    unlocks: Tuple[str, ...] = ()
    cooldown: float = 0
    log_message: str | None = None

    @property
    def tiered(self) -> bool:
        return self.show_when.tiered or self.cost.tiered or self.effects.tiered

    def tier_numbers(self) -> List[int]:
        if not self.tiered:
            return [FLAT_TIER]
        numbers = set()
        for table in (self.show_when, self.cost, self.effects):
            if table.tiered:
                numbers.update(table.tiers)
        return sorted(numbers)

    @property
    def cooldown_ms(self) -> int:
        return int(round(self.cooldown * 1000))


def _tier_key(key: Any) -> int | None:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def _build_table(raw: Any, compile_entry, what: str) -> RuleTable:
    if raw is None:
        return RuleTable()
    if not isinstance(raw, dict):
        raise ValueError(f"{what} must be a mapping")
    if not raw:
        return RuleTable()

    tier_keys = [_tier_key(k) for k in raw]
    if all(t is not None for t in tier_keys):
        tiers: Dict[int, Dict[str, Any]] = {}
        for tier, (key, entries) in zip(tier_keys, raw.items()):
            if tier < 1:
                raise ValueError(f"{what}: tier numbers start at 1 (got {key})")
            if not isinstance(entries, dict):
                raise ValueError(f"{what}: tier {key} must be a mapping")
            tiers[tier] = _compile_entries(entries, compile_entry, f"{what}.{key}")
        return RuleTable(tiered=True, tiers=tiers)
    if any(t is not None for t in tier_keys):
        raise ValueError(f"{what} mixes tier numbers and state paths")
    return RuleTable(tiered=False, tiers={FLAT_TIER: _compile_entries(raw, compile_entry, what)})


def _compile_entries(entries: Dict[str, Any], compile_entry, what: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for path, value in entries.items():
        if not isinstance(path, str):
            raise ValueError(f"{what}: key {path!r} must be a state path")
        split_path(path)
        try:
            out[path] = compile_entry(value)
        except (EvaluationError, ValueError) as exc:
            raise ValueError(f"{what}.{path}: {exc}") from exc
    return out


def build_action_spec(raw: Dict[str, Any], category: str = "other") -> ActionSpec:
    """Build an ActionSpec from one catalog mapping, compiling every formula.

    Raises:
        ValueError: If the mapping is malformed or a formula does not parse
    """
    action_id = raw.get("id")
    if not isinstance(action_id, str) or not action_id:
        raise ValueError("action id must be a string")

    cooldown = raw.get("cooldown", 0) or 0
    if isinstance(cooldown, bool) or not isinstance(cooldown, (int, float)) or cooldown < 0:
        raise ValueError(f"{action_id}: cooldown must be a non-negative number")

    unlocks = raw.get("unlocks") or []
    if not isinstance(unlocks, list) or not all(isinstance(u, str) for u in unlocks):
        raise ValueError(f"{action_id}: unlocks must be a list of action ids")

    return ActionSpec(
        id=action_id,
        label=raw.get("label", action_id),
        category=raw.get("category", category),
        show_when=_build_table(raw.get("show_when"), parse_requirement, f"{action_id}.show_when"),
        cost=_build_table(raw.get("cost"), compile_value, f"{action_id}.cost"),
        effects=_build_table(raw.get("effects"), compile_effect, f"{action_id}.effects"),
        unlocks=tuple(unlocks),
        cooldown=cooldown,
        log_message=raw.get("log_message"),
    )


def load_actions(path: str | Path) -> Dict[str, ActionSpec]:
    """Load action specifications from one YAML sub-catalog.

    The category defaults to the file stem (``forest.yaml`` -> ``forest``).

    Args:
        path: Path to a catalog file with a top-level ``actions`` list

    Returns:
        Dict mapping action_id to ActionSpec, in file order

    Raises:
        CatalogError: If the file is malformed or defines an id twice
    """
    file_path = Path(path)
    if not file_path.exists():
        return {}

    raw, text = _load_yaml_mapping(file_path)
    out: Dict[str, ActionSpec] = {}

    actions = raw.get("actions", [])
    line_map, index_lines = _action_line_map(text)
    if not isinstance(actions, list):
        raise CatalogError(f"{file_path}: actions must be a list")

    seen: Dict[str, int] = {}  # action_id -> first line number

    for idx, a in enumerate(actions):
        line = _get_action_line(a, line_map, index_lines, idx)
        if not isinstance(a, dict):
            raise CatalogError(_format_action_error(file_path, line, "action must be a mapping"))
        try:
            spec = build_action_spec(a, category=file_path.stem)
        except ValueError as exc:
            raise CatalogError(_format_action_error(file_path, line, str(exc))) from exc

        if spec.id in seen:
            first_line = seen[spec.id]
            this_line = line if line is not None else "?"
            raise CatalogError(
                f"{file_path}:{this_line}: duplicate action id '{spec.id}' "
                f"(first defined at line {first_line})"
            )

        seen[spec.id] = line if line is not None else -1
        out[spec.id] = spec

    return out


def _action_line_map(text: str) -> tuple[Dict[str, int], List[int]]:
    try:
        root = yaml.compose(text)
    except yaml.YAMLError:
        return {}, []
    if not isinstance(root, MappingNode):
        return {}, []

    actions_node = None
    for key_node, value_node in root.value:
        if isinstance(key_node, ScalarNode) and key_node.value == "actions":
            actions_node = value_node
            break

    if not isinstance(actions_node, SequenceNode):
        return {}, []

    line_map: Dict[str, int] = {}
    index_lines: List[int] = []
    for idx, action_node in enumerate(actions_node.value):
        line = action_node.start_mark.line + 1
        index_lines.append(line)
        if isinstance(action_node, MappingNode):
            for key_node, value_node in action_node.value:
                if isinstance(key_node, ScalarNode) and key_node.value == "id":
                    line_map[str(value_node.value)] = value_node.start_mark.line + 1
                    break
        else:
            line_map[f"__index_{idx}"] = line

    return line_map, index_lines


def _get_action_line(
    action: Any,
    line_map: Dict[str, int],
    index_lines: List[int],
    index: int,
) -> int | None:
    # Prefer index-based line numbers; id-based mapping can't disambiguate duplicates.
    if index < len(index_lines):
        return index_lines[index]

    if isinstance(action, dict):
        action_id = action.get("id")
        if isinstance(action_id, str) and action_id in line_map:
            return line_map[action_id]

    return None


def _format_action_error(file_path: Path, line: int | None, message: str) -> str:
    if line is not None:
        return f"{file_path}:{line}: {message}"
    return f"{file_path}: {message}"


def _format_yaml_error(file_path: Path, error: yaml.YAMLError) -> str:
    mark = getattr(error, "problem_mark", None)
    detail = getattr(error, "problem", None)
    if mark is not None:
        detail = detail or str(error)
        return f"{file_path}:{mark.line + 1}:{mark.column + 1}: {detail}"
    return f"{file_path}: {error}"


def _load_yaml_mapping(file_path: Path) -> tuple[Dict[str, Any], str]:
    text = file_path.read_text(encoding="utf-8")
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CatalogError(_format_yaml_error(file_path, exc)) from exc
    if raw is None:
        return {}, text
    if not isinstance(raw, dict):
        raise CatalogError(f"{file_path}: expected a mapping at document root")
    return raw, text
