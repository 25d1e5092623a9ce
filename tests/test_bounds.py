import numpy as np
import pytest

from fastmks.core.bounds import BoundCache, KernelBoundStatistic, pair_bounds
from fastmks.core.kernels import GaussianKernel, LinearKernel, PolynomialKernel
from fastmks.core.tree import build_cover_tree
from tests.utils.datasets import gaussian_points


def _tree(kernel, seed=0, count=150):
    points = gaussian_points(np.random.default_rng(seed), count, 3)
    return build_cover_tree(points, kernel, leaf_size=4)


@pytest.mark.parametrize(
    "kernel", [LinearKernel(), PolynomialKernel(degree=2.0, offset=0.5), GaussianKernel(0.8)]
)
def test_node_bound_dominates_every_descendant(kernel):
    tree = _tree(kernel)
    cache = BoundCache(tree)
    queries = gaussian_points(np.random.default_rng(99), 10, 3)
    query_self = kernel.diagonal(queries)
    values = kernel.pairwise(queries, tree.dataset.data)

    for node in range(tree.num_nodes):
        center = int(tree.centers[node])
        members = tree.points_of(node)
        for q in range(queries.shape[0]):
            bound = cache.get_bound(
                node,
                center_kernel=float(values[q, center]),
                query_norm=float(np.sqrt(max(query_self[q], 0.0))),
            )
            assert values[q, members].max() <= bound + 1e-9


@pytest.mark.parametrize("kernel", [LinearKernel(), PolynomialKernel(degree=3.0, offset=1.0)])
def test_pair_bound_dominates_every_pair(kernel):
    qtree = _tree(kernel, seed=1, count=60)
    rtree = _tree(kernel, seed=2, count=80)
    qcache, rcache = BoundCache(qtree), BoundCache(rtree)
    values = kernel.pairwise(qtree.dataset.data, rtree.dataset.data)

    qnodes = np.arange(qtree.num_nodes)
    rnodes = np.arange(rtree.num_nodes)
    qnorms, qradii = qcache.ensure(qnodes)
    rnorms, rradii = rcache.ensure(rnodes)
    centers = values[np.ix_(qtree.centers, rtree.centers)]
    bounds = pair_bounds(centers, qnorms, qradii, rnorms, rradii)

    for qn in qnodes:
        qpoints = qtree.points_of(qn)
        for rn in rnodes:
            block = values[np.ix_(qpoints, rtree.points_of(rn))]
            assert block.max() <= bounds[qn, rn] * (1 + 1e-12) + 1e-9


def test_records_are_lazy_and_stable():
    tree = _tree(LinearKernel())
    cache = BoundCache(tree)

    assert cache.num_computed == 0
    first = cache.record(0)
    assert cache.num_computed == 1
    assert cache.record(0) == first
    assert first.norm == pytest.approx(np.sqrt(first.self_kernel))
    assert first.radius >= tree.furthest[0]


def test_radius_padding_scales_with_self_kernel():
    tree = _tree(LinearKernel())
    statistic = KernelBoundStatistic(relative_error=1e-6)

    _, _, radius = statistic.compute(tree, np.asarray([0]))

    largest = tree.self_kernels.max()
    assert radius[0] == pytest.approx(tree.furthest[0] + np.sqrt(4e-6 * largest))


def test_precompute_freezes_cache_and_overlay_is_private():
    tree = _tree(LinearKernel())
    cache = BoundCache(tree)
    cache.precompute()

    assert cache.frozen
    assert cache.num_computed == tree.num_nodes
    norms, radii = cache.ensure(np.arange(tree.num_nodes))
    assert norms.shape == radii.shape == (tree.num_nodes,)

    overlay = cache.overlay()
    assert not overlay.frozen
    assert overlay.num_computed == 0
    assert overlay.tree is tree


def test_frozen_cache_refuses_missing_records():
    tree = _tree(LinearKernel())
    cache = BoundCache(tree)
    cache.ensure(0)

    assert cache.freeze() is cache
    assert cache.frozen
    assert cache.record(0).radius >= 0.0
    with pytest.raises(RuntimeError):
        cache.ensure(1)
    assert cache.num_computed == 1


def test_non_finite_bounds_are_unbounded():
    center_kernels = np.asarray([[np.nan, 1.0], [-np.inf, 2.0]])
    norms = np.asarray([1.0, np.inf])
    radii = np.asarray([0.5, 0.0])

    with np.errstate(invalid="ignore"):
        bounds = pair_bounds(center_kernels, norms, radii, np.ones(2), np.zeros(2))

    assert bounds[0, 0] == np.inf
    assert bounds[0, 1] == pytest.approx(1.0 + 0.5)
    assert np.all(bounds[1] == np.inf)
