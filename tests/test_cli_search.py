import sys
from pathlib import Path

import numpy as np
import scipy.sparse as sp
from typer.testing import CliRunner

from cli.search.app import app


def _write_points(tmp_path: Path, seed: int = 0):
    rng = np.random.default_rng(seed)
    reference = rng.normal(size=(40, 3))
    queries = rng.normal(size=(6, 3))
    reference_path = tmp_path / "reference.npy"
    query_path = tmp_path / "queries.csv"
    np.save(reference_path, reference)
    np.savetxt(query_path, queries, delimiter=",")
    return reference, queries, reference_path, query_path


def test_search_writes_result_matrices(tmp_path: Path):
    reference, queries, reference_path, query_path = _write_points(tmp_path)
    indices_path = tmp_path / "out" / "indices.csv"
    kernels_path = tmp_path / "out" / "kernels.csv"
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "search",
            "--reference",
            str(reference_path),
            "--query",
            str(query_path),
            "--k",
            "3",
            "--kernel",
            "polynomial",
            "--degree",
            "2",
            "--offset",
            "1",
            "--indices-file",
            str(indices_path),
            "--kernels-file",
            str(kernels_path),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "mode=dual_tree" in result.output
    indices = np.loadtxt(indices_path, delimiter=",", dtype=np.int64)
    kernels = np.loadtxt(kernels_path, delimiter=",")
    values = (queries @ reference.T + 1.0) ** 2
    expected = np.argsort(-values, axis=1, kind="stable")[:, :3].T
    assert indices.shape == (3, 6)
    assert np.array_equal(indices, expected)
    assert np.allclose(kernels, np.take_along_axis(values, expected.T, axis=1).T)


def test_search_self_search_prints_columns(tmp_path: Path):
    _, _, reference_path, _ = _write_points(tmp_path)
    runner = CliRunner()

    result = runner.invoke(
        app, ["search", "--reference", str(reference_path), "--k", "2", "--naive", "--single"]
    )

    assert result.exit_code == 0, result.output
    assert "mode=naive" in result.output
    assert "query 39:" in result.output


def test_search_accepts_sparse_npz(tmp_path: Path):
    matrix = sp.random(30, 8, density=0.3, format="csr", random_state=1)
    path = tmp_path / "reference.npz"
    sp.save_npz(path, matrix)
    runner = CliRunner()

    result = runner.invoke(app, ["search", "-r", str(path), "-k", "1", "--single-tree"])

    assert result.exit_code == 0, result.output
    assert "mode=single_tree" in result.output


def test_search_reports_invalid_k(tmp_path: Path):
    _, _, reference_path, _ = _write_points(tmp_path)
    runner = CliRunner()

    result = runner.invoke(app, ["search", "--reference", str(reference_path), "--k", "0"])

    assert result.exit_code == 1
    assert "k must be positive" in result.output


def test_search_reports_dimension_mismatch(tmp_path: Path):
    _, _, reference_path, _ = _write_points(tmp_path)
    bad_queries = tmp_path / "bad.npy"
    np.save(bad_queries, np.ones((2, 5)))
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["search", "--reference", str(reference_path), "--query", str(bad_queries), "--k", "1"],
    )

    assert result.exit_code == 1
    assert "dimensionality" in result.output


def test_benchmark_invokes_runner(monkeypatch):
    runner = CliRunner()
    invoked = {}

    def fake_run_benchmark(opts) -> None:
        invoked["modes"] = opts.modes
        invoked["k"] = opts.k

    monkeypatch.setattr(sys.modules["cli.search.app"], "run_benchmark", fake_run_benchmark)
    result = runner.invoke(app, ["benchmark", "--mode", "naive", "--mode", "dual_tree", "--k", "4"])

    assert result.exit_code == 0, result.output
    assert invoked == {"modes": ["naive", "dual_tree"], "k": 4}


def test_benchmark_reports_agreement():
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "benchmark",
            "--reference-points",
            "200",
            "--query-points",
            "20",
            "--dimension",
            "3",
            "--k",
            "2",
            "--disable-diagnostics",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "[naive]" in result.output
    assert "[single_tree]" in result.output
    assert "matches_naive=True" in result.output


def test_search_reads_single_column_csv_as_one_dimensional_points(tmp_path: Path):
    reference = np.asarray([[0.5], [2.0], [-1.0], [3.0], [1.0]])
    reference_path = tmp_path / "reference.csv"
    query_path = tmp_path / "queries.csv"
    indices_path = tmp_path / "indices.csv"
    np.savetxt(reference_path, reference, delimiter=",")
    np.savetxt(query_path, np.asarray([[1.0], [-1.0]]), delimiter=",")

    result = CliRunner().invoke(
        app,
        [
            "search",
            "-r",
            str(reference_path),
            "-q",
            str(query_path),
            "-k",
            "2",
            "--naive",
            "-i",
            str(indices_path),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "references=5" in result.output
    assert "queries=2" in result.output
    indices = np.loadtxt(indices_path, delimiter=",", dtype=np.int64)
    assert indices.tolist() == [[3, 2], [1, 0]]
