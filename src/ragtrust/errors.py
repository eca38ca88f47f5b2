"""Error taxonomy for the ragtrust core.

Every error is a local, recoverable condition reported to the caller.
Nothing in the core retries on its own.
"""

from __future__ import annotations


class RagtrustError(Exception):
    """Base exception for ragtrust."""


class DimensionMismatch(RagtrustError, ValueError):
    """Raised when a vector's dimension disagrees with the index dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding dimension mismatch: index uses {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class _MissingError(RagtrustError, KeyError):
    """KeyError subclass whose str() is readable (KeyError quotes its arg)."""

    kind = "item"

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown {self.kind}: '{self.key}'"


class UnknownSource(_MissingError):
    """Raised when a referenced source id is not registered."""

    kind = "source"


class UnknownChunk(_MissingError):
    """Raised when a referenced chunk id is not in the index."""

    kind = "chunk"


class InvalidPriority(RagtrustError, ValueError):
    """Raised for a priority outside 1..5, before any state is touched."""

    def __init__(self, priority: object) -> None:
        super().__init__(f"Priority must be an integer in 1..5, got {priority!r}")
        self.priority = priority


class ExperimentAlreadyRunning(RagtrustError):
    """Raised when starting an A/B test while another one is running."""


class NoActiveExperiment(RagtrustError):
    """Raised when an operation needs an A/B test in a state that does not exist."""


class ExperimentAlreadyEnded(RagtrustError):
    """Raised by a second end() call; the frozen results are left untouched."""


class InconclusiveExperiment(RagtrustError):
    """Raised when applying the winner of a test that has none."""


class PersistenceWriteFailed(RagtrustError):
    """Raised when the external store rejects a write.

    The in-memory mutation that triggered the write has already been rolled
    back when this reaches the caller.
    """


class SnapshotError(RagtrustError, ValueError):
    """Raised when a configuration snapshot cannot be parsed or is incomplete."""
