import numpy as np
import pytest

from fastmks import FastMKS
from fastmks.core.kernels import PolynomialKernel
from tests.utils.datasets import gaussian_points, sparse_points, uniform_points


def _assert_same_results(result, expected):
    assert np.array_equal(result.indices, expected.indices)
    assert np.allclose(result.kernels, expected.kernels, rtol=1e-5, atol=0.0)


def _assert_sparse_matches_dense(sparse, dense):
    assert np.array_equal(sparse.indices, dense.indices)
    near_zero = np.abs(sparse.kernels) <= 1e-15
    assert np.all(np.abs(dense.kernels[near_zero]) <= 1e-15)
    assert np.allclose(
        sparse.kernels[~near_zero], dense.kernels[~near_zero], rtol=1e-5, atol=0.0
    )


def test_single_tree_matches_naive_on_gaussian_data():
    rng = np.random.default_rng(1000)
    reference = gaussian_points(rng, 1000, 5)

    naive = FastMKS(reference, "linear", naive=True).search(10)
    single = FastMKS(reference, "linear", single_tree=True).search(10)

    assert single.indices.shape == (10, 1000)
    _assert_same_results(single, naive)


@pytest.mark.slow
def test_dual_tree_matches_naive_on_gaussian_data():
    rng = np.random.default_rng(5000)
    reference = gaussian_points(rng, 5000, 10)

    naive = FastMKS(reference, "linear", naive=True).search(10)
    dual = FastMKS(reference, "linear").search(10)

    assert dual.mode == "dual_tree"
    _assert_same_results(dual, naive)


@pytest.mark.slow
def test_dual_tree_matches_single_tree_with_polynomial_kernel():
    rng = np.random.default_rng(8)
    reference = uniform_points(rng, 5000, 8)
    kernel = PolynomialKernel(degree=5.0, offset=2.5)

    single = FastMKS(reference, kernel, single_tree=True).search(10)
    dual = FastMKS(reference, kernel).search(10)

    _assert_same_results(dual, single)


def test_sparse_linear_search_matches_dense():
    rng = np.random.default_rng(10)
    reference = sparse_points(rng, 100, 10, density=0.3)

    sparse = FastMKS(reference, "linear").search(3)
    dense = FastMKS(reference.toarray(), "linear").search(3)

    _assert_sparse_matches_dense(sparse, dense)


def test_sparse_polynomial_kernel_matches_dense():
    rng = np.random.default_rng(11)
    reference = sparse_points(rng, 100, 10, density=0.3)
    dense = reference.toarray()
    kernel = PolynomialKernel(degree=3.0, offset=0.0)

    sparse_values = kernel.pairwise(reference, reference)
    dense_values = kernel.pairwise(dense, dense)
    assert sparse_values.shape == (100, 100)
    small = np.abs(sparse_values) < 1e-10
    assert np.all(np.abs(dense_values[small]) < 1e-10)
    assert np.allclose(sparse_values[~small], dense_values[~small], rtol=1e-5, atol=0.0)

    sparse_result = FastMKS(reference, kernel).search(3)
    dense_result = FastMKS(dense, kernel).search(3)

    _assert_sparse_matches_dense(sparse_result, dense_result)


@pytest.mark.parametrize("flags", [{"naive": True}, {"single_tree": True}, {}])
def test_infinite_reference_coordinate_reaches_every_mode(flags):
    rng = np.random.default_rng(12)
    reference = gaussian_points(rng, 60, 3)
    reference[7, 0] = np.inf

    with np.errstate(invalid="ignore", over="ignore"):
        expected = FastMKS(reference, "linear", naive=True).search(4)
        result = FastMKS(reference, "linear", leaf_size=4, **flags).search(4)

    assert np.array_equal(result.indices, expected.indices)
    assert np.allclose(result.kernels, expected.kernels, rtol=1e-5, atol=0.0, equal_nan=True)
    assert np.isinf(result.kernels).any()
