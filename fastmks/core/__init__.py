"""Datasets, kernels and the cover tree index behind max-kernel search."""

from .bounds import BoundCache, BoundRecord, KernelBoundStatistic, TreeStatistic, pair_bounds
from .dataset import Dataset, as_dataset
from .kernels import (
    CosineKernel,
    EpanechnikovKernel,
    GaussianKernel,
    HyperbolicTangentKernel,
    Kernel,
    KernelRegistry,
    LinearKernel,
    PolynomialKernel,
    TriangularKernel,
    available_kernels,
    get_kernel,
    register_kernel,
    resolve_kernel,
)
from .metrics import KernelMetric, induced_distances
from .tree import CoverTree, TreeBuildStats, build_cover_tree

__all__ = [
    "BoundCache",
    "BoundRecord",
    "KernelBoundStatistic",
    "TreeStatistic",
    "pair_bounds",
    "Dataset",
    "as_dataset",
    "Kernel",
    "KernelRegistry",
    "LinearKernel",
    "PolynomialKernel",
    "CosineKernel",
    "GaussianKernel",
    "EpanechnikovKernel",
    "TriangularKernel",
    "HyperbolicTangentKernel",
    "available_kernels",
    "get_kernel",
    "register_kernel",
    "resolve_kernel",
    "KernelMetric",
    "induced_distances",
    "CoverTree",
    "TreeBuildStats",
    "build_cover_tree",
]
