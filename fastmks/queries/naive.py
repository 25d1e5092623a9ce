from __future__ import annotations

from typing import Tuple

import numpy as np

from fastmks import config as mks_config
from fastmks.core.dataset import Dataset
from fastmks.core.kernels import Kernel
from fastmks.diagnostics import log_operation
from fastmks.logging import get_logger
from fastmks.queries.candidates import CandidateTable
from fastmks.queries.stats import TraversalStats

LOGGER = get_logger("queries.naive")


def _offer_block(
    table: CandidateTable,
    query_ids: np.ndarray,
    reference_ids: np.ndarray,
    block: np.ndarray,
) -> None:
    """Offer each row of a Gram block, skipping entries below the row's k-th best."""

    k = table.k
    width = block.shape[1]
    for row, query in enumerate(query_ids):
        values = block[row]
        if width > k and not np.isnan(values).any():
            cutoff = -np.partition(-values, k - 1)[k - 1]
            keep = values >= cutoff
            table.offer_many(int(query), reference_ids[keep], values[keep])
        else:
            table.offer_many(int(query), reference_ids, values)


def naive_search(
    reference: Dataset,
    queries: Dataset,
    kernel: Kernel,
    k: int,
    *,
    chunk: int | None = None,
    stats: TraversalStats | None = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Exhaustive max-kernel search; every (query, reference) pair is evaluated.

    Returns ``(indices, kernels)`` shaped (k, num_queries).
    """

    stats = stats if stats is not None else TraversalStats()
    chunk = int(chunk or mks_config.runtime_config().query_chunk)
    with log_operation(LOGGER, "naive_search") as op_log:
        table = CandidateTable(queries.num_points, k)
        reference_ids = np.arange(reference.num_points, dtype=np.int64)
        for start in range(0, queries.num_points, chunk):
            stop = min(start + chunk, queries.num_points)
            query_ids = np.arange(start, stop, dtype=np.int64)
            block = np.asarray(
                kernel.pairwise(queries.take(query_ids), reference.data), dtype=np.float64
            )
            stats.kernel_evaluations += int(block.size)
            stats.base_cases += 1
            _offer_block(table, query_ids, reference_ids, block)
        op_log.add_metadata(
            queries=queries.num_points,
            references=reference.num_points,
            k=k,
            chunk=chunk,
            kernel_evals=stats.kernel_evaluations,
        )
    return table.result()


__all__ = ["naive_search"]
