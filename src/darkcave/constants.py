"""Shared constants for the darkcave engine."""

from __future__ import annotations

from pathlib import Path

# Persisted save schema version (bumped whenever migrations are added in io.py)
SCHEMA_VERSION = 3

# Log tail shown by consumers; the state tree keeps the full log
RECENT_LOG_DISPLAY = 8

LOG_TYPES = ("system", "action", "event", "production")

DEFAULT_SAVE = Path("saves/save_001.yaml")
SAVE_KEY = "mainSave"

# Declared schema fields. Numeric fields default to 0, boolean fields to False.
RESOURCE_NAMES = [
    "wood",
    "stone",
    "food",
    "bones",
    "fur",
    "leather",
    "bone_totem",
    "leather_totem",
    "iron",
    "coal",
    "sulfur",
    "obsidian",
    "adamant",
    "steel",
    "torch",
    "silver",
    "gold",
    "bloodstone",
    "frostglas",
]

STAT_NAMES = ["strength", "knowledge", "luck", "madness"]

FLAG_NAMES = [
    "gameStarted",
    "fireLit",
    "villageUnlocked",
    "forestUnlocked",
    "caveExplored",
    "venturedDeeper",
    "lowChamberExplored",
]

TOOL_NAMES = [
    "stone_axe",
    "stone_pickaxe",
    "iron_axe",
    "iron_pickaxe",
    "steel_pickaxe",
    "lantern",
    "iron_lantern",
    "reinforced_rope",
]

WEAPON_NAMES = ["crude_bow", "huntsman_bow", "iron_sword"]

BUILDING_NAMES = [
    "woodenHut",
    "cabin",
    "blacksmith",
    "pit",
    "altar",
    "temple",
    "supplyHut",
    "storehouse",
    "fortifiedStorehouse",
    "villageWarehouse",
    "grandRepository",
    "greatVault",
]

VILLAGER_NAMES = ["free", "gatherers", "hunters"]

RELIC_NAMES = ["old_trinket", "tarnished_amulet", "bloodstained_belt"]

UPGRADE_KEYS = ["chopWood", "hunt", "caveExplore", "mineStone", "mineIron"]

# Storage building -> resource cap, highest building first
STORAGE_LIMITS = [
    ("greatVault", 100000),
    ("grandRepository", 50000),
    ("villageWarehouse", 25000),
    ("fortifiedStorehouse", 10000),
    ("storehouse", 5000),
    ("supplyHut", 1000),
]
DEFAULT_RESOURCE_LIMIT = 500
UNLIMITED_RESOURCES = {"gold", "silver"}

# Button upgrades: (clicks needed, bonus fraction)
UPGRADE_LEVELS = [
    (5, 0.05),
    (25, 0.10),
    (50, 0.15),
    (100, 0.20),
    (200, 0.25),
    (400, 0.30),
    (800, 0.35),
]

# Bow -> food gained per hunt
BOW_HUNTING_FOOD = [
    ("huntsman_bow", 10),
    ("crude_bow", 6),
]

# Passive production (villager job -> per-interval deltas)
PRODUCTION_INTERVAL_MS = 30_000
MAX_CATCH_UP_MS = 8 * 60 * 60 * 1000
VILLAGER_PRODUCTION = {
    "gatherers": {"resources.wood": 1},
    "hunters": {"resources.food": 0.5},
}
