from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict


@dataclass
class TraversalStats:
    """Work counters accumulated by one search run."""

    kernel_evaluations: int = 0
    base_cases: int = 0
    scores: int = 0
    prunes: int = 0
    nodes_visited: int = 0

    def merge(self, other: "TraversalStats") -> "TraversalStats":
        self.kernel_evaluations += other.kernel_evaluations
        self.base_cases += other.base_cases
        self.scores += other.scores
        self.prunes += other.prunes
        self.nodes_visited += other.nodes_visited
        return self

    def as_metadata(self) -> Dict[str, int]:
        return asdict(self)


__all__ = ["TraversalStats"]
