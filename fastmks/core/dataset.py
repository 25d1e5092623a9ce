from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import scipy.sparse as sp

from fastmks import config as mks_config

ArrayLike = Any


def _default_dtype() -> np.dtype:
    return np.dtype(mks_config.runtime_config().precision)


@dataclass(frozen=True)
class Dataset:
    """Ordered point rows stored either densely or as a CSR matrix.

    Points are referenced everywhere else by their row index; the storage
    representation only changes how kernels evaluate, never which indices or
    values a search produces.
    """

    data: np.ndarray | sp.csr_matrix

    @classmethod
    def from_any(cls, value: Any, *, dtype: Any = None) -> "Dataset":
        if isinstance(value, Dataset):
            return value
        dtype = np.dtype(dtype) if dtype is not None else _default_dtype()
        if sp.issparse(value):
            matrix = sp.csr_matrix(value, dtype=dtype)
            matrix.sort_indices()
            return cls(matrix)
        arr = np.asarray(value, dtype=dtype)
        if arr.ndim == 0:
            arr = arr.reshape(1, 1)
        elif arr.ndim == 1:
            length = int(arr.shape[0])
            arr = arr.reshape(0, 0) if length == 0 else arr.reshape(1, length)
        elif arr.ndim != 2:
            raise ValueError(f"Datasets must be at most two-dimensional (got ndim={arr.ndim}).")
        return cls(np.ascontiguousarray(arr))

    @property
    def num_points(self) -> int:
        return int(self.data.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.data.shape[1])

    @property
    def is_sparse(self) -> bool:
        return sp.issparse(self.data)

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    def __len__(self) -> int:
        return self.num_points

    def take(self, indices: Sequence[int] | np.ndarray) -> np.ndarray | sp.csr_matrix:
        idx = np.asarray(indices, dtype=np.int64)
        return self.data[idx]

    def row(self, index: int) -> np.ndarray | sp.csr_matrix:
        if self.is_sparse:
            return self.data[int(index)]
        return self.data[int(index)][None, :]

    def to_dense(self) -> "Dataset":
        if not self.is_sparse:
            return self
        return Dataset(np.ascontiguousarray(self.data.toarray()))

    def to_sparse(self) -> "Dataset":
        if self.is_sparse:
            return self
        return Dataset(sp.csr_matrix(self.data))


def as_dataset(value: Any, *, dtype: Any = None) -> Dataset:
    return Dataset.from_any(value, dtype=dtype)


__all__ = ["Dataset", "as_dataset"]
