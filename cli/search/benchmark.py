from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np
from numpy.random import default_rng

from fastmks import FastMKS
from fastmks.api import Runtime
from tests.utils.datasets import gaussian_points

_MODE_FLAGS: Dict[str, Dict[str, bool]] = {
    "naive": {"naive": True},
    "single_tree": {"single_tree": True},
    "dual_tree": {},
}


@dataclass(frozen=True)
class ModeBenchmarkResult:
    mode: str
    build_seconds: float
    search_seconds: float
    queries: int
    k: int
    kernel_evaluations: int
    prunes: int
    matches_naive: bool | None = None
    max_relative_error: float | None = None

    @property
    def queries_per_second(self) -> float:
        return self.queries / self.search_seconds if self.search_seconds > 0 else float("inf")


def _relative_error(values: np.ndarray, expected: np.ndarray) -> float:
    scale = np.maximum(np.abs(expected), 1e-15)
    return float(np.max(np.abs(values - expected) / scale)) if expected.size else 0.0


def benchmark_modes(
    *,
    reference_points: int,
    query_points: int,
    dimension: int,
    k: int,
    seed: int = 0,
    kernel: str | None = None,
    kernel_params: Mapping[str, Any] | None = None,
    modes: Sequence[str] = ("naive", "single_tree", "dual_tree"),
    base: float | None = None,
    leaf_size: int | None = None,
    runtime: Runtime | None = None,
) -> List[ModeBenchmarkResult]:
    """Time index construction and search for each mode on Gaussian data.

    The naive mode always runs first when requested so the tree modes can be
    checked against it.
    """

    rng = default_rng(seed)
    reference = gaussian_points(rng, reference_points, dimension, dtype=np.float64)
    queries = gaussian_points(rng, query_points, dimension, dtype=np.float64)
    params = dict(kernel_params or {})

    ordered = sorted(modes, key=lambda mode: mode != "naive")
    results: List[ModeBenchmarkResult] = []
    oracle = None
    for mode in ordered:
        if mode not in _MODE_FLAGS:
            raise ValueError(f"Unknown search mode '{mode}'.")
        start = time.perf_counter()
        model = FastMKS(
            reference,
            kernel,
            base=base,
            leaf_size=leaf_size,
            runtime=runtime,
            **_MODE_FLAGS[mode],
            **params,
        )
        build_seconds = time.perf_counter() - start

        start = time.perf_counter()
        result = model.search(k, queries)
        search_seconds = time.perf_counter() - start

        matches = None
        error = None
        if mode == "naive":
            oracle = result
        elif oracle is not None:
            matches = bool(np.array_equal(result.indices, oracle.indices))
            error = _relative_error(result.kernels, oracle.kernels)
        results.append(
            ModeBenchmarkResult(
                mode=mode,
                build_seconds=build_seconds,
                search_seconds=search_seconds,
                queries=query_points,
                k=k,
                kernel_evaluations=result.stats.kernel_evaluations,
                prunes=result.stats.prunes,
                matches_naive=matches,
                max_relative_error=error,
            )
        )
    return results


__all__ = ["ModeBenchmarkResult", "benchmark_modes"]
