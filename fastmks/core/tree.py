from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np

from fastmks import config as mks_config
from fastmks.core.dataset import Dataset, as_dataset
from fastmks.core.kernels import Kernel
from fastmks.core.metrics import KernelMetric
from fastmks.diagnostics import log_operation
from fastmks.errors import InvalidArgumentError
from fastmks.logging import get_logger

LOGGER = get_logger("core.tree")

# Level recorded for nodes whose points all coincide in the induced metric.
ZERO_RADIUS_LEVEL = int(np.iinfo(np.int32).min)
# Level recorded for leaf buckets whose induced distances are NaN or infinite.
UNBOUNDED_LEVEL = int(np.iinfo(np.int32).max)


class _ChildChainCache:
    """Memoise decoded child chains from the head/next-sibling representation."""

    __slots__ = ("_children", "_next", "_cache", "_empty")

    def __init__(self, children: np.ndarray, next_cache: np.ndarray) -> None:
        self._children = children
        self._next = next_cache
        self._cache: Dict[int, np.ndarray] = {}
        self._empty = np.empty(0, dtype=np.int64)

    def get(self, parent: int) -> np.ndarray:
        if parent < 0 or parent >= self._children.shape[0]:
            return self._empty
        cached = self._cache.get(parent)
        if cached is not None:
            return cached

        head = int(self._children[parent])
        if head < 0:
            self._cache[parent] = self._empty
            return self._empty

        chain: List[int] = []
        current = head
        while 0 <= current < self._next.shape[0]:
            chain.append(current)
            nxt = int(self._next[current])
            if nxt < 0 or nxt == current:
                break
            current = nxt

        arr = np.asarray(chain, dtype=np.int64)
        self._cache[parent] = arr
        return arr


@dataclass(frozen=True)
class TreeBuildStats:
    num_nodes: int
    num_leaves: int
    max_depth: int
    distance_evaluations: int


@dataclass(frozen=True, eq=False)
class CoverTree:
    """Arena-backed cover tree over a Dataset under a kernel-induced metric.

    Nodes are integers; node 0 is the root. Each node owns a contiguous
    segment ``order[offsets[node]:offsets[node] + counts[node]]`` holding every
    point beneath it, with the node's center first. Non-leaf nodes list their
    self child (same center, one level down) first in their child chain.
    ``furthest[node]`` is the exact largest induced distance from the center
    to any point in the segment.
    """

    dataset: Dataset
    metric: KernelMetric
    centers: np.ndarray
    levels: np.ndarray
    parents: np.ndarray
    children: np.ndarray
    next_cache: np.ndarray
    offsets: np.ndarray
    counts: np.ndarray
    furthest: np.ndarray
    order: np.ndarray
    self_kernels: np.ndarray
    base: float
    leaf_size: int
    stats: TreeBuildStats
    _child_cache: _ChildChainCache = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_child_cache", _ChildChainCache(self.children, self.next_cache)
        )

    @property
    def kernel(self) -> Kernel:
        return self.metric.kernel

    @property
    def root(self) -> int:
        return 0

    @property
    def num_nodes(self) -> int:
        return int(self.centers.shape[0])

    @property
    def num_points(self) -> int:
        return self.dataset.num_points

    def is_leaf(self, node: int) -> bool:
        return int(self.children[node]) < 0

    def child_nodes(self, node: int) -> np.ndarray:
        return self._child_cache.get(int(node))

    def points_of(self, node: int) -> np.ndarray:
        start = int(self.offsets[node])
        return self.order[start : start + int(self.counts[node])]

    def scale(self, node: int) -> float:
        level = int(self.levels[node])
        if level == ZERO_RADIUS_LEVEL:
            return 0.0
        if level == UNBOUNDED_LEVEL:
            return math.inf
        return float(self.base) ** level

    def depth(self) -> int:
        return self.stats.max_depth


def _level_for(max_dist: float, base: float, log_base: float) -> int:
    if math.isnan(max_dist) or math.isinf(max_dist):
        return UNBOUNDED_LEVEL
    if max_dist <= 0.0:
        return ZERO_RADIUS_LEVEL
    level = int(math.ceil(math.log(max_dist) / log_base))
    while base ** level < max_dist:
        level += 1
    while base ** (level - 1) >= max_dist:
        level -= 1
    return level


def _resolve_build_params(base: float | None, leaf_size: int | None) -> Tuple[float, int]:
    runtime = mks_config.runtime_config()
    resolved_base = runtime.base if base is None else float(base)
    resolved_leaf = runtime.leaf_size if leaf_size is None else int(leaf_size)
    if not math.isfinite(resolved_base) or resolved_base <= 1.0:
        raise InvalidArgumentError(f"Cover tree base must exceed 1.0 (got {resolved_base}).")
    if resolved_leaf < 1:
        raise InvalidArgumentError(f"Leaf size must be at least 1 (got {resolved_leaf}).")
    return resolved_base, resolved_leaf


def build_cover_tree(
    dataset: Any,
    kernel: Kernel,
    *,
    base: float | None = None,
    leaf_size: int | None = None,
) -> CoverTree:
    """Batch-construct a cover tree whose root is the dataset's first point."""

    data = as_dataset(dataset)
    if data.num_points == 0:
        raise InvalidArgumentError("Cannot build a cover tree over an empty dataset.")
    resolved_base, resolved_leaf = _resolve_build_params(base, leaf_size)
    with log_operation(LOGGER, "build_tree") as op_log:
        tree = _build_impl(data, kernel, base=resolved_base, leaf_size=resolved_leaf)
        op_log.add_metadata(
            points=data.num_points,
            sparse=data.is_sparse,
            nodes=tree.stats.num_nodes,
            leaves=tree.stats.num_leaves,
            depth=tree.stats.max_depth,
            distance_evals=tree.stats.distance_evaluations,
            base=resolved_base,
            leaf_size=resolved_leaf,
        )
    return tree


def _build_impl(dataset: Dataset, kernel: Kernel, *, base: float, leaf_size: int) -> CoverTree:
    metric = KernelMetric(kernel)
    num_points = dataset.num_points
    self_kernels = np.asarray(kernel.diagonal(dataset.data), dtype=np.float64)
    log_base = math.log(base)

    centers: List[int] = []
    levels: List[int] = []
    parents: List[int] = []
    offsets: List[int] = []
    counts: List[int] = []
    furthest: List[float] = []
    depths: List[int] = []
    children: List[int] = []
    next_cache: List[int] = []
    last_child: List[int] = []
    order = np.empty(num_points, dtype=np.int64)
    cursor = 0

    root_members = np.arange(1, num_points, dtype=np.int64)
    root_dists = metric.distances_from(dataset, 0, root_members, self_kernels)
    evaluations = int(root_members.size)

    # (parent, center, members, distances from center); popped in DFS pre-order
    # so each subtree occupies one contiguous run of ``order``.
    stack: List[Tuple[int, int, np.ndarray, np.ndarray]] = [
        (-1, 0, root_members, root_dists)
    ]
    while stack:
        parent, center, members, dists = stack.pop()
        node = len(centers)
        max_dist = float(dists.max()) if dists.size else 0.0
        level = _level_for(max_dist, base, log_base)

        centers.append(center)
        levels.append(level)
        parents.append(parent)
        offsets.append(cursor)
        counts.append(int(members.size) + 1)
        furthest.append(max_dist)
        depths.append(0 if parent < 0 else depths[parent] + 1)
        children.append(-1)
        next_cache.append(-1)
        last_child.append(-1)
        if parent >= 0:
            if children[parent] < 0:
                children[parent] = node
            else:
                next_cache[last_child[parent]] = node
            last_child[parent] = node

        # A non-finite spread cannot be covered at any level, so it stays one bucket.
        if members.size + 1 <= leaf_size or not 0.0 < max_dist < math.inf:
            order[cursor] = center
            order[cursor + 1 : cursor + 1 + members.size] = members
            cursor += int(members.size) + 1
            continue

        radius = base ** (level - 1)
        near = dists <= radius
        tasks = [(node, center, members[near], dists[near])]
        remaining = members[~near]
        while remaining.size:
            child_center = int(remaining[0])
            rest = remaining[1:]
            child_dists = metric.distances_from(dataset, child_center, rest, self_kernels)
            evaluations += int(rest.size)
            covered = child_dists <= radius
            tasks.append((node, child_center, rest[covered], child_dists[covered]))
            remaining = rest[~covered]
        stack.extend(reversed(tasks))

    children_arr = np.asarray(children, dtype=np.int64)
    stats = TreeBuildStats(
        num_nodes=len(centers),
        num_leaves=int(np.count_nonzero(children_arr < 0)),
        max_depth=max(depths),
        distance_evaluations=evaluations,
    )
    LOGGER.debug(
        "Built cover tree over %d points: %d nodes, depth %d.",
        num_points,
        stats.num_nodes,
        stats.max_depth,
    )
    return CoverTree(
        dataset=dataset,
        metric=metric,
        centers=np.asarray(centers, dtype=np.int64),
        levels=np.asarray(levels, dtype=np.int64),
        parents=np.asarray(parents, dtype=np.int64),
        children=children_arr,
        next_cache=np.asarray(next_cache, dtype=np.int64),
        offsets=np.asarray(offsets, dtype=np.int64),
        counts=np.asarray(counts, dtype=np.int64),
        furthest=np.asarray(furthest, dtype=np.float64),
        order=order,
        self_kernels=self_kernels,
        base=base,
        leaf_size=leaf_size,
        stats=stats,
    )


__all__ = [
    "CoverTree",
    "TreeBuildStats",
    "UNBOUNDED_LEVEL",
    "ZERO_RADIUS_LEVEL",
    "build_cover_tree",
]
