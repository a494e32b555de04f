#!/usr/bin/env python3
"""Content validation tool for the darkcave action catalogs.

This tool validates that:
1. All actions become visible for at least one archetype game state
2. Every formula only calls known functions and reads known state sections
3. Every ``unlocks`` entry names an action that exists

Usage:
    python tools/validate_content.py [CATALOG_DIR]
"""

import sys
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from darkcave.action_engine import validate_action_spec
from darkcave.catalog import DATA_DIR, GameRuleSet
from darkcave.content_specs import ActionSpec
from darkcave.expressions import BUILTIN_FUNCTIONS, PlainEffect, iter_calls, iter_paths
from darkcave.models import StateTree, new_state_tree

STATE_SECTIONS = set(new_state_tree())


def create_archetype_states() -> Dict[str, StateTree]:
    """Create several archetype states representing typical points in a game.

    Returns:
        Dict mapping archetype name to state tree
    """
    archetypes = {}

    # Archetype 1: Fresh start, sitting in the dark
    fresh = new_state_tree()
    fresh["flags"]["gameStarted"] = True
    archetypes["fresh_start"] = fresh

    # Archetype 2: Fire lit, torches made, first trips into the cave
    cave = new_state_tree()
    cave["flags"].update({"gameStarted": True, "fireLit": True, "caveExplored": True})
    cave["story"]["seen"].update({"hasWood": True, "actionBuildTorch": True})
    archetypes["cave_explorer"] = cave

    # Archetype 3: A small village with tools and a few villagers
    village = new_state_tree()
    village["flags"].update({
        "gameStarted": True,
        "fireLit": True,
        "caveExplored": True,
        "villageUnlocked": True,
        "forestUnlocked": True,
    })
    village["story"]["seen"].update({"hasWood": True, "actionBuildTorch": True})
    village["tools"].update({"stone_axe": True, "stone_pickaxe": True})
    village["buildings"]["woodenHut"] = 2
    village["villagers"]["free"] = 2
    archetypes["village"] = village

    # Archetype 4: Established settlement with a cabin
    late = new_state_tree()
    late["flags"].update({name: True for name in late["flags"]})
    late["story"]["seen"].update({
        "hasWood": True,
        "actionBuildTorch": True,
        "hasIron": True,
        "hasCoal": True,
    })
    late["tools"]["stone_axe"] = True
    late["weapons"]["crude_bow"] = True
    late["buildings"].update({"woodenHut": 4, "cabin": 1})
    late["villagers"]["free"] = 1
    archetypes["settlement"] = late

    # Archetype 5: Smithy and altar built, sacrifices under way
    endgame = deepcopy(late)
    endgame["buildings"].update({"blacksmith": 1, "altar": 1, "supplyHut": 1})
    endgame["resources"].update({"bones": 200, "bone_totem": 20})
    archetypes["endgame"] = endgame

    return archetypes


def check_action_reachability(
    action_id: str,
    spec: ActionSpec,
    archetypes: Dict[str, StateTree],
) -> Dict[str, Any]:
    """Check if an action is visible for at least one archetype.

    Returns:
        Dict with reachability info:
        {
            "reachable": bool,
            "reachable_by": [archetype_names],
            "common_missing": [requirements that block all archetypes]
        }
    """
    reachable_by = []
    validation_results = {}

    for archetype_name, state in archetypes.items():
        tier, missing = validate_action_spec(state, spec)
        validation_results[archetype_name] = {"tier": tier, "missing": missing}
        if tier is not None:
            reachable_by.append(archetype_name)

    # Find common missing requirements (blockers across all archetypes)
    if not reachable_by:
        all_missing = [set(v["missing"]) for v in validation_results.values()]
        common_missing = sorted(set.intersection(*all_missing)) if all_missing else []
    else:
        common_missing = []

    return {
        "reachable": len(reachable_by) > 0,
        "reachable_by": reachable_by,
        "common_missing": common_missing,
        "validation_results": validation_results,
    }


def _formula_nodes(spec: ActionSpec):
    for tier in spec.tier_numbers():
        for expr in spec.cost.for_tier(tier).values():
            yield expr
        for effect in spec.effects.for_tier(tier).values():
            if isinstance(effect, PlainEffect):
                yield effect.expr
                continue
            yield effect.probability
            yield effect.value
            if effect.condition is not None:
                yield effect.condition


def check_formulas(spec: ActionSpec, helper_names: set) -> List[str]:
    """Report unknown function calls and reads outside the state sections."""
    issues = []
    for node in _formula_nodes(spec):
        for call in iter_calls(node):
            if call.name not in BUILTIN_FUNCTIONS and call.name not in helper_names:
                issues.append(f"calls unknown function {call.name}()")
        for path in iter_paths(node):
            if path.split(".")[0] not in STATE_SECTIONS:
                issues.append(f"reads unknown state section in {path}")
    for tier in spec.tier_numbers():
        for table in (spec.show_when, spec.cost, spec.effects):
            for path in table.for_tier(tier):
                if path.split(".")[0] not in STATE_SECTIONS:
                    issues.append(f"uses unknown state section in {path}")
    return sorted(set(issues))


def validate_content(catalog_dir: Path = DATA_DIR) -> Dict[str, Any]:
    """Run all content validation checks.

    Returns:
        Dict with validation results and metrics
    """
    rules = GameRuleSet.from_directory(catalog_dir)
    archetypes = create_archetype_states()
    helper_names = set(rules.helpers.names())

    results = {
        "total_actions": len(rules),
        "reachability": {},
        "unreachable_actions": [],
        "formula_issues": [],
        "broken_unlocks": [],
    }

    for spec in sorted(rules, key=lambda s: s.id):
        reachability = check_action_reachability(spec.id, spec, archetypes)
        results["reachability"][spec.id] = reachability
        if not reachability["reachable"]:
            results["unreachable_actions"].append({
                "action_id": spec.id,
                "common_missing": reachability["common_missing"],
            })

        issues = check_formulas(spec, helper_names)
        if issues:
            results["formula_issues"].append({"action_id": spec.id, "issues": issues})

        for target in spec.unlocks:
            if target not in rules:
                results["broken_unlocks"].append(f"{spec.id} -> {target}")

    reachable = sum(1 for r in results["reachability"].values() if r["reachable"])
    results["metrics"] = {
        "total_actions": results["total_actions"],
        "reachable_actions": reachable,
        "unreachable_actions": len(results["unreachable_actions"]),
        "formula_issues": len(results["formula_issues"]),
        "broken_unlocks": len(results["broken_unlocks"]),
        "reachability_rate": reachable / len(rules) if len(rules) else 0.0,
    }

    return results


def print_report(results: Dict[str, Any]) -> None:
    metrics = results["metrics"]

    print("=" * 70)
    print("DARKCAVE CONTENT VALIDATION REPORT")
    print("=" * 70)
    print()
    print(f"Total actions: {metrics['total_actions']}")
    print(f"Reachable actions: {metrics['reachable_actions']} ({metrics['reachability_rate']:.1%})")
    print(f"Unreachable actions: {metrics['unreachable_actions']}")
    print(f"Actions with formula issues: {metrics['formula_issues']}")
    print(f"Broken unlock references: {metrics['broken_unlocks']}")
    print()

    if results["unreachable_actions"]:
        print("UNREACHABLE ACTIONS:")
        print("-" * 70)
        for item in results["unreachable_actions"]:
            print(f"  {item['action_id']}")
            if item["common_missing"]:
                print(f"    Common blockers: {', '.join(item['common_missing'])}")
        print()

    if results["formula_issues"]:
        print("FORMULA ISSUES:")
        print("-" * 70)
        for item in results["formula_issues"]:
            print(f"  {item['action_id']}: {'; '.join(item['issues'])}")
        print()

    if results["broken_unlocks"]:
        print("BROKEN UNLOCKS:")
        print("-" * 70)
        for line in results["broken_unlocks"]:
            print(f"  {line}")
        print()

    print("=" * 70)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 = pass, 1 = validation failures)
    """
    argv = sys.argv[1:] if argv is None else argv
    catalog_dir = Path(argv[0]) if argv else DATA_DIR

    print("Loading content and running validation checks...")
    print()

    results = validate_content(catalog_dir)
    print_report(results)

    REACHABILITY_THRESHOLD = 0.90  # At least 90% of actions should be visible to some archetype

    metrics = results["metrics"]
    passed = True

    if metrics["reachability_rate"] < REACHABILITY_THRESHOLD:
        print(f"FAIL: Reachability rate {metrics['reachability_rate']:.1%} below threshold {REACHABILITY_THRESHOLD:.1%}")
        passed = False

    if metrics["formula_issues"] or metrics["broken_unlocks"]:
        print("FAIL: Catalog formulas or unlocks reference things that do not exist")
        passed = False

    if passed:
        print("PASS: All validation checks passed!")
        return 0
    else:
        print("FAIL: Some validation checks failed.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
