"""
Content integrity tests for the bundled action catalogs.

These tests ensure that the catalog files are internally consistent and catch
silent breakages like duplicate IDs, unknown helpers and dangling unlocks.
"""
import importlib.util
from pathlib import Path

import yaml

from darkcave.catalog import DATA_DIR, GameRuleSet
from darkcave.content_specs import load_actions

TOOL_PATH = Path(__file__).resolve().parents[1] / "tools" / "validate_content.py"


def _load_tool():
    spec = importlib.util.spec_from_file_location("validate_content", TOOL_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _load_yaml(path: Path):
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def test_every_catalog_loads_and_has_unique_ids():
    """Each sub-catalog loads on its own and ids never repeat across files."""
    files = sorted(DATA_DIR.glob("*.yaml"))
    assert files, f"no catalogs found in {DATA_DIR}"
    seen = {}
    for path in files:
        for action_id in load_actions(path):
            assert action_id not in seen, f"{action_id} in both {seen[action_id]} and {path.name}"
            seen[action_id] = path.name
    assert len(GameRuleSet.from_directory()) == len(seen)


def test_catalog_keys_are_known():
    """Typos in action keys would otherwise be silently ignored."""
    allowed = {"id", "label", "category", "show_when", "cost", "effects", "unlocks", "cooldown", "log_message"}
    unknown = []
    for path in sorted(DATA_DIR.glob("*.yaml")):
        for action in _load_yaml(path).get("actions", []):
            extra = set(action) - allowed
            if extra:
                unknown.append(f"{path.name}:{action.get('id')}: {sorted(extra)}")
    assert not unknown, "Unknown action keys:\n" + "\n".join(unknown)


def test_core_actions_are_present():
    rules = GameRuleSet.from_directory()
    for action_id in ("lightFire", "gatherWood", "buildHut", "boneTotems", "hunt", "exploreCave"):
        assert action_id in rules
    assert rules.get("buildHut").tier_numbers() == [1, 2, 3]
    assert rules.get("lightFire").cooldown_ms == 1_000


def test_validation_tool_passes_on_bundled_catalogs():
    """Every action is reachable, every formula resolves and unlocks point somewhere real."""
    tool = _load_tool()
    results = tool.validate_content()
    metrics = results["metrics"]
    assert metrics["unreachable_actions"] == 0, results["unreachable_actions"]
    assert metrics["formula_issues"] == 0, results["formula_issues"]
    assert metrics["broken_unlocks"] == 0, results["broken_unlocks"]
    assert tool.main([]) == 0


def test_validation_tool_flags_bad_catalogs(tmp_path):
    (tmp_path / "bad.yaml").write_text(
        "actions:\n"
        "  - id: summon\n"
        "    show_when:\n"
        "      flags.neverSet: true\n"
        "    effects:\n"
        "      resources.gold: \"getDragonBonus() + weather.rain\"\n"
        "    unlocks: [nothing]\n",
        encoding="utf-8",
    )
    tool = _load_tool()
    results = tool.validate_content(tmp_path)
    metrics = results["metrics"]
    assert metrics["unreachable_actions"] == 1
    assert metrics["broken_unlocks"] == 1
    issues = results["formula_issues"][0]["issues"]
    assert "calls unknown function getDragonBonus()" in issues
    assert "reads unknown state section in weather.rain" in issues
    assert tool.main([str(tmp_path)]) == 1
