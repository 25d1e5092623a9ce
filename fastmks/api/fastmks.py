from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

import numpy as np

from fastmks import config as mks_config
from fastmks.api.runtime import Runtime
from fastmks.core.bounds import BoundCache
from fastmks.core.dataset import Dataset, as_dataset
from fastmks.core.kernels import Kernel, resolve_kernel
from fastmks.core.tree import CoverTree, build_cover_tree
from fastmks.diagnostics import log_operation
from fastmks.errors import DimensionMismatchError, InvalidArgumentError
from fastmks.logging import get_logger
from fastmks.queries.dual_tree import dual_tree_search
from fastmks.queries.naive import naive_search
from fastmks.queries.single_tree import single_tree_search
from fastmks.queries.stats import TraversalStats

LOGGER = get_logger("api.fastmks")

NAIVE = "naive"
SINGLE_TREE = "single_tree"
DUAL_TREE = "dual_tree"


@dataclass(frozen=True)
class SearchResult:
    """Top-k indices and kernel values, one column per query.

    Column ``q`` lists query ``q``'s reference indices by kernel value
    descending (ties by ascending index). Unpacks as ``indices, kernels``.
    """

    indices: np.ndarray
    kernels: np.ndarray
    mode: str
    stats: TraversalStats = field(default_factory=TraversalStats)

    def __iter__(self) -> Iterator[np.ndarray]:
        yield self.indices
        yield self.kernels

    @property
    def k(self) -> int:
        return int(self.indices.shape[0])

    @property
    def num_queries(self) -> int:
        return int(self.indices.shape[1])


def _resolve_mode(naive: bool, single_tree: bool) -> str:
    if naive:
        return NAIVE
    if single_tree:
        return SINGLE_TREE
    return DUAL_TREE


class FastMKS:
    """Exact max-kernel search over a fixed reference set.

    ``naive=True`` selects the exhaustive scan and wins over ``single_tree``;
    otherwise a cover tree is built over the reference set and searched with
    one query at a time (``single_tree=True``) or jointly with a query tree.
    """

    def __init__(
        self,
        reference: Any,
        kernel: Kernel | str | None = None,
        *,
        naive: bool = False,
        single_tree: bool = False,
        base: float | None = None,
        leaf_size: int | None = None,
        runtime: Runtime | None = None,
        **kernel_params: Any,
    ) -> None:
        self.runtime = runtime
        self._activate()
        self.kernel: Kernel = resolve_kernel(kernel, **kernel_params)
        self.mode = _resolve_mode(naive, single_tree)
        self.base = base
        self.leaf_size = leaf_size
        self.reference: Dataset
        self.tree: CoverTree | None = None
        self.bounds: BoundCache | None = None
        self.train(reference)

    @property
    def naive(self) -> bool:
        return self.mode == NAIVE

    @property
    def single_tree(self) -> bool:
        return self.mode == SINGLE_TREE

    def _activate(self) -> mks_config.RuntimeConfig:
        if self.runtime is not None:
            return self.runtime.activate().config
        return mks_config.runtime_config()

    def train(self, reference: Any) -> "FastMKS":
        """Index a new reference set, replacing any previous one."""

        config = self._activate()
        data = as_dataset(reference)
        if data.num_points == 0:
            raise InvalidArgumentError("The reference set must contain at least one point.")
        self.reference = data
        self.tree = None
        self.bounds = None
        if self.mode != NAIVE:
            self.tree = build_cover_tree(
                data, self.kernel, base=self.base, leaf_size=self.leaf_size
            )
            self.bounds = BoundCache(self.tree)
            if config.precompute_bounds:
                self.bounds.precompute()
        return self

    def precompute_bounds(self) -> "FastMKS":
        """Fill and freeze the reference bound cache before concurrent searches."""

        if self.bounds is not None:
            self.bounds.precompute()
        return self

    def _prepare_queries(self, queries: Any) -> Dataset:
        data = as_dataset(queries, dtype=self.reference.dtype)
        # A (0, 0) set carries no dimensionality; any other shape must match.
        shaped = data.num_points > 0 or data.dimension > 0
        if shaped and data.dimension != self.reference.dimension:
            raise DimensionMismatchError(self.reference.dimension, data.dimension)
        if data.is_sparse != self.reference.is_sparse:
            data = data.to_sparse() if self.reference.is_sparse else data.to_dense()
        return data

    def _validate_k(self, k: int) -> int:
        if isinstance(k, bool) or int(k) != k:
            raise InvalidArgumentError(f"k must be an integer (got {k!r}).")
        k = int(k)
        if k <= 0:
            raise InvalidArgumentError(f"k must be positive (got {k}).")
        if k > self.reference.num_points:
            raise InvalidArgumentError(
                f"k ({k}) cannot exceed the number of reference points "
                f"({self.reference.num_points})."
            )
        return k

    def search(self, k: int, queries: Any = None) -> SearchResult:
        """Return the ``k`` reference points with the largest kernel value per query.

        With ``queries=None`` the reference set searches itself, and every
        point may return itself.
        """

        self._activate()
        k = self._validate_k(k)
        query_data = None if queries is None else self._prepare_queries(queries)
        stats = TraversalStats()
        with log_operation(LOGGER, "fastmks_search") as op_log:
            indices, kernels = self._dispatch(k, query_data, stats)
            op_log.add_metadata(
                mode=self.mode,
                k=k,
                queries=indices.shape[1],
                references=self.reference.num_points,
                self_search=query_data is None,
                **stats.as_metadata(),
            )
        return SearchResult(indices=indices, kernels=kernels, mode=self.mode, stats=stats)

    def _dispatch(
        self, k: int, queries: Dataset | None, stats: TraversalStats
    ) -> tuple[np.ndarray, np.ndarray]:
        if queries is not None and queries.num_points == 0:
            return (
                np.empty((k, 0), dtype=np.int64),
                np.empty((k, 0), dtype=np.float64),
            )
        if self.mode == NAIVE:
            return naive_search(
                self.reference,
                self.reference if queries is None else queries,
                self.kernel,
                k,
                stats=stats,
            )
        tree, bounds = self._require_tree()
        if self.mode == SINGLE_TREE:
            return single_tree_search(
                tree,
                bounds,
                tree.dataset if queries is None else queries,
                self.kernel,
                k,
                stats=stats,
            )
        if queries is None:
            return dual_tree_search(tree, bounds, tree, bounds, self.kernel, k, stats=stats)
        query_tree = build_cover_tree(
            queries, self.kernel, base=tree.base, leaf_size=tree.leaf_size
        )
        return dual_tree_search(
            query_tree, BoundCache(query_tree), tree, bounds, self.kernel, k, stats=stats
        )

    def _require_tree(self) -> tuple[CoverTree, BoundCache]:
        if self.tree is None or self.bounds is None:
            raise ValueError("FastMKS requires a reference tree; call train() first.")
        return self.tree, self.bounds


__all__ = ["DUAL_TREE", "FastMKS", "NAIVE", "SINGLE_TREE", "SearchResult"]
