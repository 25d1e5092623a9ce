from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Protocol, Tuple, runtime_checkable

import numpy as np
import scipy.sparse as sp

from fastmks.errors import InvalidArgumentError

ArrayLike = Any


@runtime_checkable
class Kernel(Protocol):
    """Symmetric real-valued similarity consumed by every search mode.

    Only ``evaluate`` is required by the contract; ``pairwise`` and
    ``diagonal`` are the batched forms the traversals call.
    """

    name: str

    def evaluate(self, lhs: ArrayLike, rhs: ArrayLike) -> float:
        ...

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        ...

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        ...


def _as_rows(points: ArrayLike) -> ArrayLike:
    if sp.issparse(points):
        return points if points.ndim == 2 else sp.csr_matrix(points)
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[None, :]
    return arr


def _dot(lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
    lhs_rows = _as_rows(lhs)
    rhs_rows = _as_rows(rhs)
    if lhs_rows.shape[1] != rhs_rows.shape[1]:
        raise ValueError(
            f"Kernel operands have mismatched dimensionality ({lhs_rows.shape[1]} vs {rhs_rows.shape[1]})."
        )
    product = lhs_rows @ rhs_rows.T
    if sp.issparse(product):
        product = product.toarray()
    return np.asarray(product, dtype=np.float64)


def _row_sq_norms(points: ArrayLike) -> np.ndarray:
    rows = _as_rows(points)
    if sp.issparse(rows):
        return np.asarray(rows.multiply(rows).sum(axis=1), dtype=np.float64).ravel()
    return np.einsum("ij,ij->i", rows, rows).astype(np.float64, copy=False)


def _sq_distances(lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
    cross = _dot(lhs, rhs)
    sq = _row_sq_norms(lhs)[:, None] - 2.0 * cross + _row_sq_norms(rhs)[None, :]
    return np.maximum(sq, 0.0)


class _KernelBase:
    name: str = "kernel"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        raise NotImplementedError

    def evaluate(self, lhs: ArrayLike, rhs: ArrayLike) -> float:
        return float(self.pairwise(lhs, rhs)[0, 0])

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        rows = _as_rows(points)
        return np.asarray(
            [self.evaluate(rows[i], rows[i]) for i in range(rows.shape[0])],
            dtype=np.float64,
        )


@dataclass(frozen=True)
class LinearKernel(_KernelBase):
    """K(x, y) = x . y"""

    name = "linear"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        return _dot(lhs, rhs)

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return _row_sq_norms(points)


@dataclass(frozen=True)
class PolynomialKernel(_KernelBase):
    """K(x, y) = (x . y + offset) ** degree"""

    degree: float = 2.0
    offset: float = 0.0
    name = "polynomial"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        return np.power(_dot(lhs, rhs) + self.offset, self.degree)

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return np.power(_row_sq_norms(points) + self.offset, self.degree)


@dataclass(frozen=True)
class CosineKernel(_KernelBase):
    """K(x, y) = x . y / (|x| |y|), zero when either norm vanishes."""

    name = "cosine"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        cross = _dot(lhs, rhs)
        denom = np.sqrt(_row_sq_norms(lhs))[:, None] * np.sqrt(_row_sq_norms(rhs))[None, :]
        out = np.zeros_like(cross)
        np.divide(cross, denom, out=out, where=denom > 0.0)
        return out

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return (_row_sq_norms(points) > 0.0).astype(np.float64)


@dataclass(frozen=True)
class GaussianKernel(_KernelBase):
    """K(x, y) = exp(-|x - y|^2 / (2 bandwidth^2))"""

    bandwidth: float = 1.0
    name = "gaussian"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        gamma = 0.5 / (self.bandwidth * self.bandwidth)
        return np.exp(-gamma * _sq_distances(lhs, rhs))

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return np.ones(_as_rows(points).shape[0], dtype=np.float64)


@dataclass(frozen=True)
class EpanechnikovKernel(_KernelBase):
    """K(x, y) = max(0, 1 - |x - y|^2 / bandwidth^2)"""

    bandwidth: float = 1.0
    name = "epanechnikov"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        inv = 1.0 / (self.bandwidth * self.bandwidth)
        return np.maximum(1.0 - _sq_distances(lhs, rhs) * inv, 0.0)

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return np.ones(_as_rows(points).shape[0], dtype=np.float64)


@dataclass(frozen=True)
class TriangularKernel(_KernelBase):
    """K(x, y) = max(0, 1 - |x - y| / bandwidth)"""

    bandwidth: float = 1.0
    name = "triangular"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        return np.maximum(1.0 - np.sqrt(_sq_distances(lhs, rhs)) / self.bandwidth, 0.0)

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return np.ones(_as_rows(points).shape[0], dtype=np.float64)


@dataclass(frozen=True)
class HyperbolicTangentKernel(_KernelBase):
    """K(x, y) = tanh(scale * x . y + offset); not positive semi-definite."""

    scale: float = 1.0
    offset: float = 0.0
    name = "hyptan"

    def pairwise(self, lhs: ArrayLike, rhs: ArrayLike) -> np.ndarray:
        return np.tanh(self.scale * _dot(lhs, rhs) + self.offset)

    def diagonal(self, points: ArrayLike) -> np.ndarray:
        return np.tanh(self.scale * _row_sq_norms(points) + self.offset)


KernelFactory = Callable[..., Kernel]


class KernelRegistry:
    """Name -> factory registry for runtime-selectable kernels."""

    def __init__(self) -> None:
        self._factories: Dict[str, KernelFactory] = {}

    def register(self, name: str, factory: KernelFactory, *, overwrite: bool = False) -> None:
        key = name.lower()
        if not overwrite and key in self._factories:
            raise ValueError(f"Kernel '{name}' already registered.")
        self._factories[key] = factory

    def get(self, name: str, **params: Any) -> Kernel:
        key = name.lower()
        if key not in self._factories:
            raise KeyError(f"Kernel '{name}' not registered.")
        try:
            return self._factories[key](**params)
        except TypeError as exc:
            raise InvalidArgumentError(f"Invalid parameters for kernel '{name}': {exc}") from exc

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._factories.keys()))


def _positive(value: float, name: str) -> float:
    value = float(value)
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidArgumentError(f"{name} must be a positive finite number (got {value}).")
    return value


def _linear(**params: Any) -> Kernel:
    if params:
        raise TypeError(f"unexpected parameters {sorted(params)}")
    return LinearKernel()


def _cosine(**params: Any) -> Kernel:
    if params:
        raise TypeError(f"unexpected parameters {sorted(params)}")
    return CosineKernel()


def _polynomial(*, degree: float = 2.0, offset: float = 0.0) -> Kernel:
    return PolynomialKernel(degree=float(degree), offset=float(offset))


def _gaussian(*, bandwidth: float = 1.0) -> Kernel:
    return GaussianKernel(bandwidth=_positive(bandwidth, "bandwidth"))


def _epanechnikov(*, bandwidth: float = 1.0) -> Kernel:
    return EpanechnikovKernel(bandwidth=_positive(bandwidth, "bandwidth"))


def _triangular(*, bandwidth: float = 1.0) -> Kernel:
    return TriangularKernel(bandwidth=_positive(bandwidth, "bandwidth"))


def _hyptan(*, scale: float = 1.0, offset: float = 0.0) -> Kernel:
    return HyperbolicTangentKernel(scale=float(scale), offset=float(offset))


def _load_registry() -> KernelRegistry:
    registry = KernelRegistry()
    registry.register("linear", _linear)
    registry.register("polynomial", _polynomial)
    registry.register("cosine", _cosine)
    registry.register("gaussian", _gaussian)
    registry.register("epanechnikov", _epanechnikov)
    registry.register("triangular", _triangular)
    registry.register("hyptan", _hyptan)
    return registry


_REGISTRY = _load_registry()


def get_kernel(name: str | None = None, **params: Any) -> Kernel:
    """Instantiate a registered kernel, defaulting to the runtime-selected one."""

    if name is None:
        from fastmks import config as mks_config

        name = mks_config.runtime_config().kernel
    return _REGISTRY.get(name, **params)


def register_kernel(name: str, factory: KernelFactory, *, overwrite: bool = False) -> None:
    _REGISTRY.register(name, factory, overwrite=overwrite)


def available_kernels() -> Tuple[str, ...]:
    return _REGISTRY.names()


def resolve_kernel(kernel: Kernel | str | None, **params: Any) -> Kernel:
    if kernel is None or isinstance(kernel, str):
        return get_kernel(kernel, **params)
    if params:
        raise InvalidArgumentError("Kernel parameters are only accepted with a kernel name.")
    if not callable(getattr(kernel, "pairwise", None)):
        raise InvalidArgumentError(
            f"Kernel {kernel!r} does not provide a pairwise(lhs, rhs) evaluation."
        )
    return kernel


__all__ = [
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
]
