#!/usr/bin/env python
"""Quick-start guide for fastmks.

Run with: python -m fastmks

Nothing from the library is imported here so the help text prints instantly.
"""

from __future__ import annotations

QUICKSTART = """\
================================================================================
                                   FASTMKS
           Exact max-kernel search over kernel-induced cover trees
================================================================================

BASIC USAGE
-----------
    import numpy as np
    from fastmks import FastMKS

    reference = np.random.randn(5000, 10)
    queries = np.random.randn(100, 10)

    # Dual-tree search (default); results are k x |Q|, one column per query
    model = FastMKS(reference, "linear")
    indices, kernels = model.search(k=5, queries=queries)

    # Self-search: every reference point against the whole reference set
    result = model.search(k=5)
    print(result.stats)

SEARCH MODES
------------
    FastMKS(reference, naive=True)        # exhaustive O(|Q| |R|) scan
    FastMKS(reference, single_tree=True)  # best-first per query
    FastMKS(reference)                    # dual-tree (default)

KERNELS
-------
    linear, polynomial(degree, offset), cosine, gaussian(bandwidth),
    epanechnikov(bandwidth), triangular(bandwidth), hyptan(scale, offset)

    FastMKS(reference, "polynomial", degree=3.0, offset=1.0)
    FastMKS(reference, "gaussian", bandwidth=0.5)

Sparse inputs (scipy.sparse matrices) are accepted wherever dense arrays are.

CONFIGURATION
-------------
    FASTMKS_PRECISION=float64   FASTMKS_BASE=2.0       FASTMKS_LEAF_SIZE=16
    FASTMKS_KERNEL=linear       FASTMKS_QUERY_CHUNK=512
    FASTMKS_PRECOMPUTE_BOUNDS=0 FASTMKS_ENABLE_DIAGNOSTICS=1
    FASTMKS_LOG_LEVEL=INFO

    from fastmks import Runtime
    FastMKS(reference, runtime=Runtime(leaf_size=32, diagnostics=False))

COMMAND LINE
------------
    python -m cli.search search --reference ref.npy --query q.npy --k 5
    python -m cli.search benchmark --reference-points 5000 --dimension 10

================================================================================
"""


def main() -> None:
    """Print quick-start guide."""
    print(QUICKSTART)


if __name__ == "__main__":
    main()
