"""Tests for catalog loading in content_specs.py."""

import tempfile
from pathlib import Path

import pytest

from darkcave.content_specs import FLAT_TIER, build_action_spec, load_actions
from darkcave.errors import CatalogError
from darkcave.expressions import PlainEffect, ProbabilisticEffect


def _write(tmpdir, name, text):
    path = Path(tmpdir) / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_actions_normalizes_flat_and_tiered_tables():
    """Flat tables live under FLAT_TIER; tiered tables keep their tier numbers."""
    text = """
actions:
  - id: lightFire
    label: Light Fire
    show_when:
      flags.fireLit: false
    effects:
      flags.fireLit: true
    cooldown: 1
  - id: buildHut
    show_when:
      1:
        flags.villageUnlocked: true
      2:
        buildings.cabin: 1
    cost:
      1:
        resources.wood: 100
      2:
        resources.wood: 200
    effects:
      1:
        buildings.woodenHut: 1
      2:
        buildings.woodenHut: 1
    cooldown: 10
"""
    with tempfile.TemporaryDirectory() as tmpdir:
        specs = load_actions(_write(tmpdir, "village.yaml", text))

    assert list(specs) == ["lightFire", "buildHut"]

    fire = specs["lightFire"]
    assert fire.label == "Light Fire"
    assert fire.category == "village"
    assert not fire.tiered
    assert fire.tier_numbers() == [FLAT_TIER]
    assert fire.cooldown_ms == 1000
    assert isinstance(fire.effects.for_tier(FLAT_TIER)["flags.fireLit"], PlainEffect)

    hut = specs["buildHut"]
    assert hut.tiered
    assert hut.tier_numbers() == [1, 2]
    assert set(hut.cost.for_tier(2)) == {"resources.wood"}
    assert hut.cost.for_tier(3) == {}
    assert hut.label == "buildHut"


def test_probabilistic_effects_are_compiled():
    spec = build_action_spec({
        "id": "exploreCave",
        "effects": {
            "resources.coal": {"probability": 0.1, "value": "random(1,4)"},
            "flags.caveExplored": True,
        },
        "cooldown": 2.5,
    })
    effects = spec.effects.for_tier(FLAT_TIER)
    assert isinstance(effects["resources.coal"], ProbabilisticEffect)
    assert list(effects) == ["resources.coal", "flags.caveExplored"]
    assert spec.cooldown_ms == 2500


@pytest.mark.parametrize(
    "raw",
    [
        {"label": "no id"},
        {"id": "x", "cooldown": -1},
        {"id": "x", "cooldown": "soon"},
        {"id": "x", "unlocks": "y"},
        {"id": "x", "show_when": ["flags.fireLit"]},
        {"id": "x", "show_when": {"flags.fireLit": "maybe"}},
        {"id": "x", "show_when": {1: {"flags.fireLit": True}, "flags.x": True}},
        {"id": "x", "show_when": {0: {"flags.fireLit": True}}},
        {"id": "x", "cost": {"resources.wood": "10 +"}},
        {"id": "x", "effects": {"resources..wood": 1}},
        {"id": "x", "effects": {"resources.wood": {"probability": 0.5}}},
    ],
)
def test_build_action_spec_rejects_malformed_actions(raw):
    with pytest.raises(ValueError):
        build_action_spec(raw)


def test_load_actions_reports_file_and_line():
    """Errors point at the offending action in the catalog file."""
    text = """actions:
  - id: ok
    effects:
      resources.wood: 1
  - id: broken
    cost:
      resources.wood: "random(1,"
"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, "forest.yaml", text)
        with pytest.raises(CatalogError) as excinfo:
            load_actions(path)

    assert f"{path}:5:" in str(excinfo.value)
    assert "broken" in str(excinfo.value)


def test_load_actions_rejects_duplicate_ids():
    text = """actions:
  - id: gatherWood
  - id: gatherWood
"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, "forest.yaml", text)
        with pytest.raises(CatalogError, match="duplicate action id 'gatherWood'"):
            load_actions(path)


def test_load_actions_rejects_bad_yaml_and_shapes():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(CatalogError):
            load_actions(_write(tmpdir, "a.yaml", "actions: [\n"))
        with pytest.raises(CatalogError):
            load_actions(_write(tmpdir, "b.yaml", "- just\n- a list\n"))
        with pytest.raises(CatalogError):
            load_actions(_write(tmpdir, "c.yaml", "actions: {id: x}\n"))
        with pytest.raises(CatalogError):
            load_actions(_write(tmpdir, "d.yaml", "actions:\n  - 42\n"))


def test_catalog_error_is_a_value_error():
    """Callers that catch ValueError keep working."""
    assert issubclass(CatalogError, ValueError)


def test_missing_and_empty_files_load_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert load_actions(Path(tmpdir) / "absent.yaml") == {}
        assert load_actions(_write(tmpdir, "empty.yaml", "")) == {}
