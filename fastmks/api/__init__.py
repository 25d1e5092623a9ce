"""Public ergonomic façade for fastmks."""

from .fastmks import FastMKS, SearchResult
from .runtime import Runtime

__all__ = [
    "FastMKS",
    "Runtime",
    "SearchResult",
]
