"""Exceptions raised by the rating engine."""

from __future__ import annotations


class RatingEngineError(Exception):
    """Base class for all rating-engine failures."""


class InvalidIndexError(RatingEngineError, IndexError):
    """A user or item index is non-integral or outside the declared dense range."""

    def __init__(self, kind: str, index: object, size: int) -> None:
        super().__init__(f"{kind} index {index!r} is not an integer in [0, {size})")
        self.kind = kind
        self.index = index
        self.size = size


class NoTrainingDataError(RatingEngineError, ValueError):
    """Training was requested on an empty rating set."""


class LengthMismatchError(RatingEngineError, ValueError):
    """Two sequences that must be aligned have different lengths."""


class TrainingDivergedError(RatingEngineError, FloatingPointError):
    """Gradient descent produced a non-finite training error."""
