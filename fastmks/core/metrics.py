from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from fastmks.core.dataset import Dataset
from fastmks.core.kernels import Kernel

ArrayLike = Any


def induced_distances(
    cross: np.ndarray, lhs_self: np.ndarray, rhs_self: np.ndarray
) -> np.ndarray:
    """d(x, y) = sqrt(max(K(x,x) - 2K(x,y) + K(y,y), 0)) from precomputed kernels."""

    radicand = lhs_self[:, None] - 2.0 * cross + rhs_self[None, :]
    return np.sqrt(np.maximum(radicand, 0.0))


@dataclass(frozen=True)
class KernelMetric:
    """Distance in the kernel's feature space, used to build and bound the index.

    The radicand is clamped at zero so rounding (or an indefinite kernel) never
    yields a NaN distance. Searches never rank by this distance.
    """

    kernel: Kernel

    @property
    def name(self) -> str:
        return f"induced[{getattr(self.kernel, 'name', type(self.kernel).__name__)}]"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        cross = self.kernel.pairwise(lhs, rhs)
        return induced_distances(
            np.asarray(cross, dtype=np.float64),
            np.asarray(self.kernel.diagonal(lhs), dtype=np.float64),
            np.asarray(self.kernel.diagonal(rhs), dtype=np.float64),
        )

    def distance(self, lhs: ArrayLike, rhs: ArrayLike) -> float:
        return float(self.pairwise(lhs, rhs)[0, 0])

    def distances_from(
        self,
        dataset: Dataset,
        center: int,
        members: np.ndarray,
        self_kernels: np.ndarray,
    ) -> np.ndarray:
        """Distances from point ``center`` to each of ``members`` (row indices)."""

        if members.size == 0:
            return np.empty(0, dtype=np.float64)
        cross = np.asarray(
            self.kernel.pairwise(dataset.row(center), dataset.take(members)),
            dtype=np.float64,
        )
        return induced_distances(
            cross,
            self_kernels[[center]],
            self_kernels[members],
        )[0]


__all__ = ["KernelMetric", "induced_distances"]
