from __future__ import annotations

import heapq
import math
from typing import List, Tuple

import numpy as np

from fastmks.core.bounds import BoundCache
from fastmks.core.dataset import Dataset
from fastmks.core.kernels import Kernel
from fastmks.core.tree import CoverTree
from fastmks.diagnostics import log_operation
from fastmks.logging import get_logger
from fastmks.queries.candidates import CandidateList, CandidateTable
from fastmks.queries.stats import TraversalStats

LOGGER = get_logger("queries.single_tree")


def _single_query_search(
    query_row,
    query_norm: float,
    candidates: CandidateList,
    *,
    tree: CoverTree,
    bounds: BoundCache,
    kernel: Kernel,
    stats: TraversalStats,
) -> None:
    """Best-first descent of the reference tree for one query."""

    data = tree.dataset
    root = tree.root
    root_center = int(tree.centers[root])
    root_value = float(kernel.pairwise(query_row, data.row(root_center))[0, 0])
    stats.kernel_evaluations += 1
    candidates.offer(root_center, root_value)

    root_bound = bounds.get_bound(root, center_kernel=root_value, query_norm=query_norm)
    frontier: List[Tuple[float, int, int, float]] = [(-root_bound, 0, root, root_value)]
    counter = 1

    while frontier:
        neg_bound, _, node, center_value = heapq.heappop(frontier)
        # Every bound still queued is no larger than this one.
        if candidates.full and -neg_bound < candidates.threshold:
            stats.prunes += 1 + len(frontier)
            break
        stats.nodes_visited += 1

        if tree.is_leaf(node):
            members = tree.points_of(node)[1:]
            if members.size:
                values = np.asarray(
                    kernel.pairwise(query_row, data.take(members)), dtype=np.float64
                )[0]
                stats.kernel_evaluations += int(members.size)
                candidates.offer_many(members, values)
            stats.base_cases += 1
            continue

        kids = tree.child_nodes(node)
        kid_centers = tree.centers[kids]
        # The first child is the self child and shares this node's center.
        kid_values = np.empty(kids.shape[0], dtype=np.float64)
        kid_values[0] = center_value
        if kids.shape[0] > 1:
            kid_values[1:] = np.asarray(
                kernel.pairwise(query_row, data.take(kid_centers[1:])), dtype=np.float64
            )[0]
            stats.kernel_evaluations += int(kids.shape[0] - 1)
            candidates.offer_many(kid_centers[1:], kid_values[1:])
        stats.scores += int(kids.shape[0])

        kid_bounds = bounds.bounds(kids, kid_values, query_norm)
        threshold = candidates.threshold
        for slot in np.argsort(-kid_bounds, kind="stable"):
            bound = float(kid_bounds[slot])
            if bound < threshold:
                stats.prunes += 1
                continue
            heapq.heappush(frontier, (-bound, counter, int(kids[slot]), float(kid_values[slot])))
            counter += 1


def single_tree_search(
    tree: CoverTree,
    bounds: BoundCache,
    queries: Dataset,
    kernel: Kernel,
    k: int,
    *,
    stats: TraversalStats | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Search the reference tree once per query.

    Returns ``(indices, kernels)`` shaped (k, num_queries).
    """

    stats = stats if stats is not None else TraversalStats()
    with log_operation(LOGGER, "single_tree_search") as op_log:
        table = CandidateTable(queries.num_points, k)
        query_self = np.asarray(kernel.diagonal(queries.data), dtype=np.float64)
        for query in range(queries.num_points):
            _single_query_search(
                queries.row(query),
                math.sqrt(max(float(query_self[query]), 0.0)),
                table.row(query),
                tree=tree,
                bounds=bounds,
                kernel=kernel,
                stats=stats,
            )
        op_log.add_metadata(
            queries=queries.num_points,
            references=tree.num_points,
            k=k,
            kernel_evals=stats.kernel_evaluations,
            prunes=stats.prunes,
        )
    return table.result()


__all__ = ["single_tree_search"]
