"""
Error Types
===========
Exception hierarchy for the repair engine.

Only configuration faults and infrastructure faults escape to callers.
Build failures, classification misses and fixes that cannot be applied are
result values inside the loop, never exceptions.
"""


class BuildFixError(Exception):
    """Base class for all repair-engine errors."""


class PatternTableError(BuildFixError):
    """The error-pattern configuration is invalid (empty table, bad regex, unknown action)."""


class FixApplicationError(BuildFixError):
    """A matched fix cannot be structurally applied to the artifact."""


class BuilderUnavailableError(BuildFixError):
    """The builder collaborator cannot be reached at all (e.g. no container daemon)."""


class BuildTimeoutError(BuildFixError):
    """The builder exceeded its wall-clock budget. Carries any partial output."""

    def __init__(self, timeout_seconds: float, partial_output: str = "") -> None:
        super().__init__(f"build exceeded {timeout_seconds:g}s timeout")
        self.timeout_seconds = timeout_seconds
        self.partial_output = partial_output


class BuildCancelledError(BuildFixError):
    """The caller cancelled the run while a build was in progress."""
