"""Exceptions raised by the darkcave engine.

Executor failures (cooldown, eligibility, affordability) are not exceptions;
they are reported through ``ExecutionResult.reason``.
"""


class DarkCaveError(Exception):
    """Base exception for the engine."""


class CatalogError(DarkCaveError, ValueError):
    """Raised when an action catalog file is malformed."""


class EvaluationError(DarkCaveError):
    """Raised when a formula is malformed or calls a missing helper."""


class LoadError(DarkCaveError):
    """Raised when a persisted save is corrupt or unreadable."""


class MigrationError(LoadError):
    """Raised when a save was written by a newer schema than this engine supports."""
