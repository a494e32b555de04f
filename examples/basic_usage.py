#!/usr/bin/env python3
"""Basic engine usage example.

Plays the opening of A Dark Cave, saves it to memory, then loads it back
an hour later so the villagers' passive production shows up.
"""

from darkcave.engine import new_game
from darkcave.io import MemorySaveStore, load_session, save_session
from darkcave.view import build_view_model


class ManualClock:
    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now


def main():
    print("=" * 60)
    print("A Dark Cave - Basic Usage Example")
    print("=" * 60)

    clock = ManualClock(1_700_000_000_000)
    session = new_game(seed=42, clock=clock)
    print("\n1. New game:")
    for entry in session.state["log"]:
        print(f"  {entry['message']}")

    print("\n2. Playing the opening...")
    for action_id in ["lightFire", "gatherWood", "gatherWood", "gatherWood", "buildTorch", "buildHut"]:
        clock.now += 6_000
        result = session.execute(action_id)
        if result.success:
            print(f"  ✓ {action_id}: {result.state_delta.get('resources', {})}")
        else:
            print(f"  ✗ {action_id}: {result.reason.value} {result.missing}")

    print("\n3. Available actions:")
    for entry in session.list_eligible_actions():
        print(f"  - {entry['actionId']} (tier {entry['tier']})")

    print("\n4. Saving and loading an hour later...")
    store = MemorySaveStore()
    session.state["villagers"]["gatherers"] = 2
    save_session(session, store)
    clock.now += 60 * 60 * 1000
    restored = load_session(store, session.rules, clock=clock)
    vm = build_view_model(restored)
    print(f"  Resources: {vm['resources']}")
    for entry in vm["recent_log"][-2:]:
        print(f"  {entry['message']}")


if __name__ == "__main__":
    main()
