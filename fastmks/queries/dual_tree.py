"""Dual-tree max-kernel search.

Pairs of (query node, reference node) are explored depth first, most
promising pair first. A pair is pruned when its bound falls strictly below
the query node's threshold: a lower bound on the worst k-th best value over
every query beneath it. Thresholds are cached per query node and only ever
raised. A base case refreshes its query node from the candidate table and
then walks up the ancestors, each taking the minimum over its children, until
an ancestor no longer changes. Descending into a child copies the parent's
threshold when it is higher.

A pair is split on the side with the larger cover-tree scale (both sides when
the scales match), and becomes a base case once both nodes are leaves or the
pair holds at most ``base_case_size`` point pairs.
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np

from fastmks import config as mks_config
from fastmks.core.bounds import BoundCache, pair_bounds
from fastmks.core.kernels import Kernel
from fastmks.core.tree import CoverTree
from fastmks.diagnostics import log_operation
from fastmks.logging import get_logger
from fastmks.queries.candidates import CandidateTable
from fastmks.queries.stats import TraversalStats

LOGGER = get_logger("queries.dual_tree")


class _DualTreeTraversal:
    def __init__(
        self,
        query_tree: CoverTree,
        query_bounds: BoundCache,
        reference_tree: CoverTree,
        reference_bounds: BoundCache,
        kernel: Kernel,
        table: CandidateTable,
        stats: TraversalStats,
        *,
        base_case_size: int,
    ) -> None:
        self.qtree = query_tree
        self.qbounds = query_bounds
        self.rtree = reference_tree
        self.rbounds = reference_bounds
        self.kernel = kernel
        self.table = table
        self.stats = stats
        self.base_limit = max(
            query_tree.leaf_size ** 2, reference_tree.leaf_size ** 2, int(base_case_size)
        )
        self.thresholds = np.full(query_tree.num_nodes, -np.inf, dtype=np.float64)

    def _gram(self, query_points: np.ndarray, reference_points: np.ndarray) -> np.ndarray:
        block = self.kernel.pairwise(
            self.qtree.dataset.take(query_points), self.rtree.dataset.take(reference_points)
        )
        self.stats.kernel_evaluations += int(query_points.size * reference_points.size)
        return np.asarray(block, dtype=np.float64)

    def _raise(self, node: int, value: float) -> bool:
        if value > self.thresholds[node]:
            self.thresholds[node] = value
            return True
        return False

    def _refresh(self, qnode: int) -> None:
        exact = float(self.table.thresholds(self.qtree.points_of(qnode)).min())
        if not self._raise(qnode, exact):
            return
        node = int(self.qtree.parents[qnode])
        while node >= 0:
            kids = self.qtree.child_nodes(node)
            if not self._raise(node, float(self.thresholds[kids].min())):
                break
            node = int(self.qtree.parents[node])

    def _base_case(self, qnode: int, rnode: int) -> None:
        query_points = self.qtree.points_of(qnode)
        reference_points = self.rtree.points_of(rnode)
        block = self._gram(query_points, reference_points)
        self.table.offer_block(query_points, reference_points, block)
        self.stats.base_cases += 1
        self._refresh(qnode)

    def _split_sides(self, qnode: int, rnode: int) -> Tuple[bool, bool]:
        if self.qtree.is_leaf(qnode):
            return False, True
        if self.rtree.is_leaf(rnode):
            return True, False
        qscale = self.qtree.scale(qnode)
        rscale = self.rtree.scale(rnode)
        return qscale >= rscale, rscale >= qscale

    def _score_children(
        self, qnode: int, rnode: int, center_value: float
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        split_query, split_reference = self._split_sides(qnode, rnode)
        qkids = (
            self.qtree.child_nodes(qnode)
            if split_query
            else np.asarray([qnode], dtype=np.int64)
        )
        rkids = (
            self.rtree.child_nodes(rnode)
            if split_reference
            else np.asarray([rnode], dtype=np.int64)
        )
        qcenters = self.qtree.centers[qkids]
        rcenters = self.rtree.centers[rkids]

        # Entry (0, 0) pairs the first children, whose centers are the parents'.
        values = np.empty((qkids.shape[0], rkids.shape[0]), dtype=np.float64)
        values[0, 0] = center_value
        if rkids.shape[0] > 1:
            values[0, 1:] = self._gram(qcenters[:1], rcenters[1:])[0]
        if qkids.shape[0] > 1:
            values[1:, :] = self._gram(qcenters[1:], rcenters)
        self.table.offer_block(qcenters, rcenters, values)

        qnorms, qradii = self.qbounds.ensure(qkids)
        rnorms, rradii = self.rbounds.ensure(rkids)
        bounds = pair_bounds(values, qnorms, qradii, rnorms, rradii)
        self.stats.scores += int(bounds.size)
        return qkids, rkids, values, bounds

    def run(self) -> None:
        qroot, rroot = self.qtree.root, self.rtree.root
        qcenter = self.qtree.centers[[qroot]]
        rcenter = self.rtree.centers[[rroot]]
        root_value = float(self._gram(qcenter, rcenter)[0, 0])
        self.table.offer(int(qcenter[0]), int(rcenter[0]), root_value)
        qnorm, qradius = self.qbounds.ensure(qroot)
        rnorm, rradius = self.rbounds.ensure(rroot)
        root_bound = float(
            pair_bounds(np.asarray([[root_value]]), qnorm, qradius, rnorm, rradius)[0, 0]
        )

        # (query node, reference node, bound, kernel between their centers)
        stack: List[Tuple[int, int, float, float]] = [(qroot, rroot, root_bound, root_value)]
        while stack:
            qnode, rnode, bound, center_value = stack.pop()
            parent = int(self.qtree.parents[qnode])
            if parent >= 0:
                self._raise(qnode, float(self.thresholds[parent]))
            if bound < self.thresholds[qnode]:
                self.stats.prunes += 1
                continue
            self.stats.nodes_visited += 1

            pair_size = int(self.qtree.counts[qnode]) * int(self.rtree.counts[rnode])
            if (
                self.qtree.is_leaf(qnode) and self.rtree.is_leaf(rnode)
            ) or pair_size <= self.base_limit:
                self._base_case(qnode, rnode)
                continue

            qkids, rkids, values, bounds = self._score_children(qnode, rnode, center_value)
            floor = np.maximum(self.thresholds[qkids], self.thresholds[qnode])
            live = ~(bounds < floor[:, None])
            self.stats.prunes += int(bounds.size - np.count_nonzero(live))
            rows, cols = np.nonzero(live)
            # Push in ascending bound order so the most promising pair is popped first.
            for slot in np.argsort(bounds[rows, cols], kind="stable"):
                row, col = int(rows[slot]), int(cols[slot])
                stack.append(
                    (int(qkids[row]), int(rkids[col]), float(bounds[row, col]), float(values[row, col]))
                )


def dual_tree_search(
    query_tree: CoverTree,
    query_bounds: BoundCache,
    reference_tree: CoverTree,
    reference_bounds: BoundCache,
    kernel: Kernel,
    k: int,
    *,
    base_case_size: int | None = None,
    stats: TraversalStats | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Joint traversal of a query tree and a reference tree.

    Pass the reference tree and its bound cache in both roles for a
    self-search. Returns ``(indices, kernels)`` shaped (k, num_queries) with
    columns in the query tree's original point order.
    """

    stats = stats if stats is not None else TraversalStats()
    if base_case_size is None:
        base_case_size = mks_config.runtime_config().base_case_size
    with log_operation(LOGGER, "dual_tree_search") as op_log:
        table = CandidateTable(query_tree.num_points, k)
        traversal = _DualTreeTraversal(
            query_tree,
            query_bounds,
            reference_tree,
            reference_bounds,
            kernel,
            table,
            stats,
            base_case_size=base_case_size,
        )
        traversal.run()
        op_log.add_metadata(
            queries=query_tree.num_points,
            references=reference_tree.num_points,
            k=k,
            self_search=query_tree is reference_tree,
            base_case_size=traversal.base_limit,
            kernel_evals=stats.kernel_evaluations,
            base_cases=stats.base_cases,
            prunes=stats.prunes,
        )
    return table.result()


__all__ = ["dual_tree_search"]
