from __future__ import annotations

from typing import Tuple

import numpy as np
import scipy.sparse as sp
from numpy.random import Generator, default_rng

Array = np.ndarray


def _ensure_rng(rng: Generator | None) -> Generator:
    return rng or default_rng()


def gaussian_points(
    rng: Generator | None,
    count: int,
    dimension: int,
    *,
    dtype: np.dtype | type[np.floating] = np.float64,
) -> Array:
    """Sample `count` Gaussian points with the requested dimensionality."""

    generator = _ensure_rng(rng)
    if count <= 0 or dimension <= 0:
        return np.zeros((max(count, 0), max(dimension, 0)), dtype=dtype)
    samples = generator.normal(loc=0.0, scale=1.0, size=(count, dimension))
    return np.asarray(samples, dtype=dtype)


def uniform_points(
    rng: Generator | None,
    count: int,
    dimension: int,
    *,
    dtype: np.dtype | type[np.floating] = np.float64,
) -> Array:
    """Sample `count` points uniformly from the unit cube."""

    generator = _ensure_rng(rng)
    samples = generator.uniform(0.0, 1.0, size=(max(count, 0), max(dimension, 0)))
    return np.asarray(samples, dtype=dtype)


def sparse_points(
    rng: Generator | None,
    count: int,
    dimension: int,
    *,
    density: float,
) -> sp.csr_matrix:
    """Sparse uniform points: each entry non-zero with probability `density`."""

    generator = _ensure_rng(rng)
    matrix = sp.random(
        count,
        dimension,
        density=density,
        format="csr",
        random_state=generator,
        data_rvs=lambda size: generator.uniform(0.0, 1.0, size=size),
    )
    return matrix.astype(np.float64)


def gaussian_dataset(
    rng: Generator | None,
    *,
    reference_points: int,
    queries: int,
    dimension: int,
    dtype: np.dtype | type[np.floating] = np.float64,
) -> Tuple[Array, Array]:
    """Return a tuple `(reference, queries)` drawn from the same Gaussian."""

    generator = _ensure_rng(rng)
    points = gaussian_points(generator, reference_points, dimension, dtype=dtype)
    query_points = gaussian_points(generator, queries, dimension, dtype=dtype)
    return points, query_points


def brute_force_topk(
    kernel_matrix: Array,
    k: int,
) -> Tuple[Array, Array]:
    """Reference top-k over a (queries x references) kernel matrix.

    Returns k x |Q| matrices ordered by value descending, ties by index.
    """

    num_queries, num_refs = kernel_matrix.shape
    indices = np.empty((k, num_queries), dtype=np.int64)
    values = np.empty((k, num_queries), dtype=np.float64)
    ref_ids = np.arange(num_refs)
    for query in range(num_queries):
        row = kernel_matrix[query]
        order = np.lexsort((ref_ids, -row))[:k]
        indices[:, query] = order
        values[:, query] = row[order]
    return indices, values
