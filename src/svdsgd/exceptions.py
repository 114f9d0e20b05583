"""Errors raised by the training job. Every one of them aborts the run."""


class SVDError(Exception):
    """Base class for errors raised by ``svdsgd``."""


class FormatError(SVDError, ValueError):
    """A binary block has the wrong size or a text row is malformed."""


class CapacityExceeded(SVDError):
    """The ratings source holds more rows than the store was sized for."""

    def __init__(self, capacity: int, n_rows: int) -> None:
        self.capacity = capacity
        self.n_rows = n_rows  # rows seen when the limit was hit, not necessarily the total
        super().__init__(f"Ratings source has at least {n_rows:,} rows, store capacity is {capacity:,}")


class InvalidState(SVDError, RuntimeError):
    """A precondition of training does not hold."""


class ConfigError(SVDError, ValueError):
    """Configuration values failed validation."""
