from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
import scipy.sparse as sp

_TEXT_SUFFIXES = {".csv", ".txt"}


def load_points(path: str | Path) -> Any:
    """Load a point matrix (one point per row) from .npy, .npz or CSV text."""

    location = Path(path)
    suffix = location.suffix.lower()
    if suffix == ".npy":
        return np.load(location, allow_pickle=False)
    if suffix == ".npz":
        return sp.load_npz(location).tocsr()
    if suffix in _TEXT_SUFFIXES:
        # One point per line, so a single column is N points of dimension 1.
        return np.loadtxt(location, delimiter=",", dtype=np.float64, ndmin=2)
    raise ValueError(
        f"Unsupported point file '{location}'; expected .npy, .npz, .csv or .txt."
    )


def save_matrix(path: str | Path, matrix: np.ndarray, *, integer: bool = False) -> Path:
    location = Path(path)
    if location.parent and not location.parent.exists():
        location.parent.mkdir(parents=True, exist_ok=True)
    fmt = "%d" if integer else "%.17g"
    np.savetxt(location, np.atleast_2d(matrix), delimiter=",", fmt=fmt)
    return location


__all__ = ["load_points", "save_matrix"]
