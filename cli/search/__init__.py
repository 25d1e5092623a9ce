from __future__ import annotations

from .app import BenchmarkCLIOptions, SearchCLIOptions, app, main, run_benchmark, run_search
from .benchmark import ModeBenchmarkResult, benchmark_modes
from .io import load_points, save_matrix

__all__ = [
    "BenchmarkCLIOptions",
    "ModeBenchmarkResult",
    "SearchCLIOptions",
    "app",
    "benchmark_modes",
    "load_points",
    "main",
    "run_benchmark",
    "run_search",
    "save_matrix",
]
