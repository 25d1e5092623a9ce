from __future__ import annotations


class InvalidArgumentError(ValueError):
    """Raised when a search or index argument is out of range."""


class DimensionMismatchError(ValueError):
    """Raised when query and reference points have different dimensionality."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(
            f"Query dimensionality {received} does not match reference dimensionality {expected}."
        )
        self.expected = expected
        self.received = received


__all__ = ["InvalidArgumentError", "DimensionMismatchError"]
