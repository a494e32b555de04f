"""Tests for the game session in engine.py."""

import pytest

from darkcave.catalog import GameRuleSet
from darkcave.constants import PRODUCTION_INTERVAL_MS
from darkcave.content_specs import build_action_spec
from darkcave.engine import OPENING_MESSAGE, Session, new_game
from darkcave.models import ErrorKind

from fakes import FakeClock, FixedRandom


@pytest.fixture(scope="module")
def rules():
    return GameRuleSet.from_directory()


def test_new_game_starts_in_the_dark(rules):
    clock = FakeClock(5_000)
    session = new_game(rules, seed=1, clock=clock)
    assert session.state["flags"]["gameStarted"] is True
    assert session.state["flags"]["fireLit"] is False
    assert session.state["log"][-1]["message"] == OPENING_MESSAGE
    assert session.list_eligible_actions() == [{"actionId": "lightFire", "tier": None}]


def test_execute_commits_state_log_and_cooldown(rules):
    """A successful action updates the tree, appends its log and starts its cooldown."""
    clock = FakeClock(10_000)
    session = new_game(rules, clock=clock)
    log_size = len(session.state["log"])

    result = session.execute("lightFire")
    assert result.success
    assert session.state["flags"]["fireLit"] is True
    assert len(session.state["log"]) == log_size + 1
    assert session.get_remaining_cooldown("lightFire") == 1_000

    clock.advance(400)
    assert session.get_remaining_cooldown("lightFire") == 600


def test_failed_execute_changes_nothing(rules):
    session = new_game(rules, clock=FakeClock())
    before = session.state
    result = session.execute("gatherWood")
    assert result.reason == ErrorKind.NOT_ELIGIBLE
    assert session.state is before
    assert session.cooldowns.to_dict() == {}


def test_early_game_progression(rules):
    """Fire, wood, torches, then the cave opens up."""
    clock = FakeClock(0)
    session = Session(rules, clock=clock, rng=FixedRandom([0.99], roll=None))
    session.state["flags"]["gameStarted"] = True

    assert session.execute("lightFire").success
    for _ in range(5):
        clock.advance(5_000)
        assert session.execute("gatherWood").success
    assert session.state["resources"]["wood"] == 15

    assert session.execute("buildTorch").success
    clock.advance(3_000)
    assert session.execute("exploreCave").reason == ErrorKind.INSUFFICIENT_RESOURCES
    ids = {a["actionId"] for a in session.list_eligible_actions()}
    assert "exploreCave" in ids


def test_cooldown_blocks_until_elapsed(rules):
    clock = FakeClock(0)
    session = new_game(rules, clock=clock, seed=3)
    session.execute("lightFire")
    assert session.execute("gatherWood").success
    clock.advance(4_999)
    assert session.execute("gatherWood").reason == ErrorKind.ON_COOLDOWN
    clock.advance(1)
    assert session.execute("gatherWood").success


def test_play_time_accumulates(rules):
    clock = FakeClock(0)
    session = new_game(rules, clock=clock)
    clock.advance(2_000)
    session.execute("lightFire")
    clock.advance(3_000)
    assert session.play_time_at(clock()) == 5_000
    assert session.play_time == 2_000


def test_catch_up_adds_production(rules):
    clock = FakeClock(0)
    session = new_game(rules, clock=clock)
    session.state["villagers"]["gatherers"] = 2
    clock.advance(PRODUCTION_INTERVAL_MS * 3 + 1_000)
    entries = session.catch_up()
    assert session.state["resources"]["wood"] == 6
    assert session.state["log"][-1]["type"] == "production"
    assert len(entries) == 1
    assert session.production_anchor == PRODUCTION_INTERVAL_MS * 3


def test_restart_resets_everything(rules):
    clock = FakeClock(0)
    session = new_game(rules, clock=clock)
    session.execute("lightFire")
    clock.advance(100)
    session.restart()
    assert session.state["flags"]["fireLit"] is False
    assert session.cooldowns.to_dict() == {}
    assert session.play_time == 0
    assert session.execute("lightFire").success
    assert session.production_anchor == 100


def test_catch_up_carries_partial_intervals(rules):
    """Two catch-ups of two thirds of an interval still credit one interval."""
    clock = FakeClock(0)
    session = new_game(rules, clock=clock)
    session.state["villagers"]["gatherers"] = 3
    clock.advance(PRODUCTION_INTERVAL_MS * 2 // 3)
    assert session.catch_up() == []
    clock.advance(PRODUCTION_INTERVAL_MS * 2 // 3)
    session.catch_up()
    assert session.state["resources"]["wood"] == 3


def test_catch_up_without_anchor_only_sets_it(rules):
    session = Session(rules, clock=FakeClock(50_000))
    session.state["villagers"]["gatherers"] = 1
    assert session.catch_up() == []
    assert session.production_anchor == 50_000
    assert session.state["resources"]["wood"] == 0


def test_log_ids_stay_unique_within_one_millisecond():
    """Actions without a cooldown can commit twice at the same instant."""
    stoke = build_action_spec({"id": "stokeFire", "log_message": "The fire crackles."})
    session = new_game(GameRuleSet({"stokeFire": stoke}), clock=FakeClock(7_000))
    assert session.execute("stokeFire").success
    assert session.execute("stokeFire").success
    ids = [entry["id"] for entry in session.state["log"]]
    assert len(ids) == len(set(ids))
