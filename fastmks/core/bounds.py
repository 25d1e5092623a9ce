"""Per-node bound records for max-kernel pruning.

For a PSD kernel with feature map phi, every point x under a node with center
p satisfies |phi(x) - phi(p)| <= radius, so for any query q

    K(q, x) = <phi(q), phi(p)> + <phi(q), phi(x) - phi(p)>
            <= K(q, p) + radius * sqrt(K(q, q)).

Pairing two nodes (query center pq, reference center pr) gives

    K(q, r) <= K(pq, pr) + rq * rr + rq * |pr| + rr * |pq|.

Radii are padded by sqrt(4 * eps * M), where M is the largest self-kernel
under the node and eps the relative rounding error of one kernel evaluation:
the clamped radicand K(x,x) - 2K(x,y) + K(y,y) can lose at most 4 * eps * M
to rounding, so the padded radius never understates the true distance.

Bounds that come out non-finite (a NaN or infinite kernel value somewhere in
the inputs) are reported as +inf, so such nodes are never pruned.

Records are written lazily the first time a traversal touches a node. A cache
is only safe to share between concurrently running searches after
``precompute()`` has filled and frozen it; otherwise give every search its own
``overlay()``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol, Tuple

import numpy as np

from fastmks.core.tree import CoverTree

KERNEL_RELATIVE_ERROR = 1e-12


def _unbounded_where_nonfinite(bounds: np.ndarray) -> np.ndarray:
    return np.where(np.isfinite(bounds), bounds, np.inf)


@dataclass(frozen=True)
class BoundRecord:
    self_kernel: float
    norm: float
    radius: float
    computed: bool = True


class TreeStatistic(Protocol):
    """Computes (self_kernel, norm, radius) arrays for a batch of nodes."""

    def compute(
        self, tree: CoverTree, nodes: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        ...


@dataclass(frozen=True)
class KernelBoundStatistic:
    relative_error: float = KERNEL_RELATIVE_ERROR

    def compute(
        self, tree: CoverTree, nodes: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        centers = tree.centers[nodes]
        self_kernel = tree.self_kernels[centers]
        norm = np.sqrt(np.maximum(self_kernel, 0.0))
        largest = np.empty(nodes.shape[0], dtype=np.float64)
        for slot, node in enumerate(nodes):
            largest[slot] = tree.self_kernels[tree.points_of(int(node))].max()
        pad = np.sqrt(4.0 * self.relative_error * np.maximum(largest, 0.0))
        radius = tree.furthest[nodes] + pad
        return self_kernel, norm, radius


class BoundCache:
    """Lazily filled bound records for every node of one tree."""

    def __init__(self, tree: CoverTree, statistic: TreeStatistic | None = None) -> None:
        self.tree = tree
        self.statistic: TreeStatistic = statistic or KernelBoundStatistic()
        size = tree.num_nodes
        self._self_kernel = np.full(size, np.nan, dtype=np.float64)
        self._norm = np.zeros(size, dtype=np.float64)
        self._radius = np.zeros(size, dtype=np.float64)
        self._computed = np.zeros(size, dtype=bool)
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def num_computed(self) -> int:
        return int(np.count_nonzero(self._computed))

    def ensure(self, nodes: np.ndarray | int) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(norms, radii)`` for ``nodes``, computing missing records."""

        idx = np.atleast_1d(np.asarray(nodes, dtype=np.int64))
        missing = idx[~self._computed[idx]]
        if missing.size:
            if self._frozen:
                raise RuntimeError(
                    "Bound cache is frozen but records are missing; call precompute() "
                    "before sharing it between searches."
                )
            missing = np.unique(missing)
            self_kernel, norm, radius = self.statistic.compute(self.tree, missing)
            self._self_kernel[missing] = self_kernel
            self._norm[missing] = norm
            self._radius[missing] = radius
            self._computed[missing] = True
        return self._norm[idx], self._radius[idx]

    def record(self, node: int) -> BoundRecord:
        self.ensure(node)
        return BoundRecord(
            self_kernel=float(self._self_kernel[node]),
            norm=float(self._norm[node]),
            radius=float(self._radius[node]),
        )

    def get_bound(self, node: int, *, center_kernel: float, query_norm: float) -> float:
        """Upper bound on K(q, x) for every x under ``node``."""

        _, radius = self.ensure(node)
        bound = float(center_kernel + radius[0] * query_norm)
        return bound if math.isfinite(bound) else math.inf

    def bounds(
        self, nodes: np.ndarray, center_kernels: np.ndarray, query_norm: float
    ) -> np.ndarray:
        _, radii = self.ensure(nodes)
        return _unbounded_where_nonfinite(center_kernels + radii * query_norm)

    def precompute(self) -> "BoundCache":
        """Fill every record and freeze the cache against further writes."""

        if not self._frozen:
            self.ensure(np.arange(self.tree.num_nodes, dtype=np.int64))
            self._frozen = True
        return self

    def freeze(self) -> "BoundCache":
        """Reject further writes; missing records raise instead of being computed."""

        self._frozen = True
        return self

    def overlay(self) -> "BoundCache":
        """Return an empty private cache over the same tree."""

        return BoundCache(self.tree, self.statistic)


def pair_bounds(
    center_kernels: np.ndarray,
    query_norms: np.ndarray,
    query_radii: np.ndarray,
    reference_norms: np.ndarray,
    reference_radii: np.ndarray,
) -> np.ndarray:
    """Upper bounds on K(q, r) for every (query node, reference node) pair."""

    qn = query_norms[:, None]
    qr = query_radii[:, None]
    rn = reference_norms[None, :]
    rr = reference_radii[None, :]
    return _unbounded_where_nonfinite(center_kernels + qr * rr + qr * rn + rr * qn)


__all__ = [
    "BoundCache",
    "BoundRecord",
    "KERNEL_RELATIVE_ERROR",
    "KernelBoundStatistic",
    "TreeStatistic",
    "pair_bounds",
]
