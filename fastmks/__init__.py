"""fastmks: exact max-kernel search over kernel-induced cover trees.

Quick Start
-----------
>>> import numpy as np
>>> from fastmks import FastMKS
>>>
>>> reference = np.random.randn(5000, 10)
>>> queries = np.random.randn(100, 10)
>>> indices, kernels = FastMKS(reference, "linear").search(k=5, queries=queries)
>>> indices.shape  # one column per query
(5, 100)

Modes
-----
>>> FastMKS(reference, naive=True)          # exhaustive scan
>>> FastMKS(reference, single_tree=True)    # one query at a time
>>> FastMKS(reference, "polynomial", degree=3.0, offset=1.0)  # dual-tree (default)

Classes
-------
FastMKS : Build an index over a reference set and search it.
SearchResult : k x |Q| indices and kernel values plus traversal statistics.
Runtime : Declarative overrides for precision, tree shape and diagnostics.
"""

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("fastmks")
except Exception:  # pragma: no cover - best effort during local development
    __version__ = "0.1.0"

from .api import FastMKS, Runtime, SearchResult
from .core import (
    BoundCache,
    CoverTree,
    Dataset,
    Kernel,
    KernelMetric,
    available_kernels,
    build_cover_tree,
    get_kernel,
    register_kernel,
)
from .errors import DimensionMismatchError, InvalidArgumentError
from .queries import TraversalStats

__all__ = [
    "__version__",
    "FastMKS",
    "Runtime",
    "SearchResult",
    "BoundCache",
    "CoverTree",
    "Dataset",
    "Kernel",
    "KernelMetric",
    "TraversalStats",
    "available_kernels",
    "build_cover_tree",
    "get_kernel",
    "register_kernel",
    "DimensionMismatchError",
    "InvalidArgumentError",
]
