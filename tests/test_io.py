"""Tests for save/load functionality in io.py."""

import tempfile
from pathlib import Path

import pytest
import yaml

from darkcave.catalog import GameRuleSet
from darkcave.constants import PRODUCTION_INTERVAL_MS, SAVE_KEY, SCHEMA_VERSION
from darkcave.engine import new_game
from darkcave.errors import LoadError, MigrationError
from darkcave.io import (
    FileSaveStore,
    MemorySaveStore,
    SaveMetadata,
    deserialize_save,
    load_or_new,
    load_session,
    save_session,
    serialize_save,
)
from darkcave.models import ErrorKind, new_state_tree

from fakes import FakeClock


@pytest.fixture(scope="module")
def rules():
    return GameRuleSet.from_directory()


def _played_state():
    state = new_state_tree()
    state["resources"]["wood"] = 123
    state["resources"]["food"] = 2.5
    state["flags"]["fireLit"] = True
    state["story"]["seen"]["hasWood"] = True
    state["events"]["oldTrinketFound"] = {"triggeredAt": 99, "source": "gatherWood"}
    state["log"].append({"id": "a-1-0", "message": "hello", "timestamp": 1, "type": "action"})
    return state


def test_save_and_load_roundtrip():
    """Saving and loading preserves the whole state tree and metadata."""
    state = _played_state()
    meta = SaveMetadata(timestamp=1_000, play_time=500, cooldowns={"gatherWood": 6_000})

    loaded = deserialize_save(serialize_save(state, meta))

    assert loaded.state == state
    assert loaded.metadata.timestamp == 1_000
    assert loaded.metadata.play_time == 500
    assert loaded.metadata.version == SCHEMA_VERSION
    assert loaded.metadata.cooldowns == {"gatherWood": 6_000}


def test_serialized_layout():
    text = serialize_save(new_state_tree(), SaveMetadata(timestamp=7, play_time=3))
    raw = yaml.safe_load(text)
    assert set(raw) == {"gameState", "timestamp", "playTime", "version", "cooldowns", "lastProductionAt"}
    assert raw["version"] == SCHEMA_VERSION


def test_saving_unchanged_state_twice_is_identical():
    state = _played_state()
    meta = SaveMetadata(timestamp=1_000, play_time=500)
    assert serialize_save(state, meta) == serialize_save(state, meta)


def test_unknown_fields_survive_a_round_trip():
    """Fields added by a newer build or a mod are carried through untouched."""
    state = _played_state()
    state["cult"] = {"members": 4}
    state["resources"]["mithril"] = 9
    text = serialize_save(state, SaveMetadata(extra={"platform": "web"}))

    loaded = deserialize_save(text)
    assert loaded.state["cult"] == {"members": 4}
    assert loaded.state["resources"]["mithril"] == 9
    assert loaded.metadata.extra == {"platform": "web"}
    assert "platform: web" in serialize_save(loaded.state, loaded.metadata)


def test_missing_fields_get_defaults():
    text = yaml.safe_dump({"gameState": {"resources": {"wood": 5}}, "version": SCHEMA_VERSION})
    loaded = deserialize_save(text)
    assert loaded.state["resources"]["wood"] == 5
    assert loaded.state["resources"]["stone"] == 0
    assert loaded.state["flags"]["fireLit"] is False
    assert loaded.metadata.timestamp == 0


def test_version_one_save_is_migrated():
    """v1 saves lack relics, story.seen and button upgrades and have no version."""
    text = yaml.safe_dump({
        "gameState": {"resources": {"wood": 40}, "story": {}},
        "timestamp": 1_000,
    })
    loaded = deserialize_save(text)
    assert loaded.metadata.version == SCHEMA_VERSION
    assert loaded.state["relics"]["old_trinket"] is False
    assert loaded.state["story"]["seen"] == {}
    assert loaded.state["buttonUpgrades"]["chopWood"] == 0
    assert loaded.state["resources"]["wood"] == 40


def test_version_two_cooldowns_become_timestamps():
    """v2 stored seconds remaining; v3 stores when the action is ready."""
    text = yaml.safe_dump({
        "gameState": new_state_tree(),
        "timestamp": 50_000,
        "version": 2,
        "cooldowns": {"boneTotems": 30, "hunt": 0, "junk": "x"},
    })
    loaded = deserialize_save(text)
    assert loaded.metadata.cooldowns == {"boneTotems": 80_000}


def test_newer_save_is_a_migration_error():
    text = yaml.safe_dump({"gameState": new_state_tree(), "version": SCHEMA_VERSION + 1})
    with pytest.raises(MigrationError):
        deserialize_save(text)


@pytest.mark.parametrize(
    "text",
    [
        "gameState: [unclosed\n",
        "just a string\n",
        "- a\n- list\n",
        "timestamp: 5\n",
        "gameState: 7\n",
        "gameState: {}\nversion: three\n",
        "gameState:\n  log: [junk]\nversion: 3\ntimestamp: 0\n",
        "gameState:\n  log: {a: 1}\n",
        "gameState:\n  log:\n    - {id: x, message: hi, timestamp: soon}\n",
        "gameState:\n  resources: {wood: lots}\n",
        "",
    ],
)
def test_corrupt_saves_raise_load_error(text):
    with pytest.raises(LoadError):
        deserialize_save(text)


def test_cooldown_survives_save_and_reload(rules):
    """A reload mid-cooldown still blocks the action."""
    clock = FakeClock(100_000)
    store = MemorySaveStore()
    session = new_game(rules, clock=clock)
    session.execute("lightFire")
    session.execute("gatherWood")
    save_session(session, store)

    clock.advance(2_000)
    restored = load_session(store, rules, clock=clock)
    assert restored.execute("gatherWood").reason == ErrorKind.ON_COOLDOWN
    assert restored.get_remaining_cooldown("gatherWood") == 3_000

    clock.advance(3_000)
    assert restored.execute("gatherWood").success


def test_expired_cooldowns_are_not_saved(rules):
    clock = FakeClock(0)
    session = new_game(rules, clock=clock)
    session.execute("lightFire")
    clock.advance(5_000)
    text = save_session(session, MemorySaveStore())
    assert yaml.safe_load(text)["cooldowns"] == {}
    assert session.cooldowns.to_dict() == {"lightFire": 1_000}


def test_repeated_save_writes_the_same_text(rules):
    clock = FakeClock(0)
    store = MemorySaveStore()
    session = new_game(rules, clock=clock)
    session.execute("lightFire")
    first = save_session(session, store)
    second = save_session(session, store)
    assert first == second


def test_load_applies_passive_production(rules):
    clock = FakeClock(1_000)
    store = MemorySaveStore()
    session = new_game(rules, clock=clock)
    session.state["villagers"]["gatherers"] = 1
    save_session(session, store)

    clock.advance(PRODUCTION_INTERVAL_MS * 10)
    restored = load_session(store, rules, clock=clock)
    assert restored.state["resources"]["wood"] == 10
    assert restored.state["log"][-1]["type"] == "production"


def test_frequent_reloads_still_accrue_production(rules):
    """Reloading every 20 s keeps the partial interval for the next load."""
    clock = FakeClock(1_000)
    store = MemorySaveStore()
    session = new_game(rules, clock=clock)
    session.state["villagers"]["gatherers"] = 10
    save_session(session, store)

    for _ in range(10):
        clock.advance(20_000)
        session = load_session(store, rules, clock=clock)
        save_session(session, store)

    assert session.state["resources"]["wood"] == 10 * (200_000 // PRODUCTION_INTERVAL_MS)
    assert yaml.safe_load(store.read(SAVE_KEY))["lastProductionAt"] == 1_000 + 6 * PRODUCTION_INTERVAL_MS


def test_saves_without_production_anchor_catch_up_from_timestamp(rules):
    state = new_state_tree()
    state["villagers"]["hunters"] = 2
    store = MemorySaveStore()
    store.write(SAVE_KEY, yaml.safe_dump({"gameState": state, "timestamp": 5_000, "version": SCHEMA_VERSION}))

    restored = load_session(store, rules, clock=FakeClock(5_000 + PRODUCTION_INTERVAL_MS * 4))
    assert restored.state["resources"]["food"] == 4
    assert restored.production_anchor == 5_000 + PRODUCTION_INTERVAL_MS * 4


def test_load_session_without_save_returns_none(rules):
    assert load_session(MemorySaveStore(), rules) is None


def test_load_or_new_falls_back_on_corrupt_save(rules, caplog):
    """A broken save starts a new game and hands back the error."""
    store = MemorySaveStore()
    store.write("mainSave", "gameState: [oops\n")
    session, error = load_or_new(store, rules, clock=FakeClock())
    assert isinstance(error, LoadError)
    assert session.state["flags"]["gameStarted"] is True
    assert "could not be loaded" in caplog.text

    session, error = load_or_new(MemorySaveStore(), rules, clock=FakeClock())
    assert error is None


def test_file_store_roundtrip(rules):
    clock = FakeClock(1_000)
    session = new_game(rules, clock=clock)
    session.execute("lightFire")

    with tempfile.TemporaryDirectory() as tmpdir:
        store = FileSaveStore(Path(tmpdir) / "saves")
        assert store.read("slot1") is None
        save_session(session, store, key="slot1")
        assert (Path(tmpdir) / "saves" / "slot1.yaml").exists()

        restored = load_session(store, rules, key="slot1", clock=clock)
        assert restored.state == session.state
        store.delete("slot1")
        assert store.read("slot1") is None
