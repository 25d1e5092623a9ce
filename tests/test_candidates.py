import numpy as np
import pytest

from fastmks.queries.candidates import CandidateTable


def test_offer_keeps_sorted_top_k():
    table = CandidateTable(1, 3)
    row = table.row(0)

    assert row.offer(5, 1.0)
    assert row.offer(2, 3.0)
    assert not row.full
    assert row.threshold == -np.inf
    assert row.offer(7, 2.0)
    assert row.full
    assert row.offer(1, 2.5)
    assert not row.offer(9, 0.5)

    indices, values = row.entries()
    assert indices.tolist() == [2, 1, 7]
    assert values.tolist() == [3.0, 2.5, 2.0]
    assert row.threshold == 2.0


def test_ties_prefer_lower_index_and_equal_rank_is_rejected():
    table = CandidateTable(1, 2)
    row = table.row(0)
    row.offer(4, 1.0)
    row.offer(6, 1.0)

    assert not row.offer(8, 1.0)
    assert row.offer(3, 1.0)
    assert row.entries()[0].tolist() == [3, 4]


def test_duplicate_indices_are_ignored():
    table = CandidateTable(1, 3)
    row = table.row(0)
    row.offer(1, 2.0)

    assert not row.offer(1, 2.0)
    assert row.offer_many(np.asarray([1, 2, 1]), np.asarray([2.0, 1.0, 2.0]))
    indices, _ = row.entries()
    assert indices.tolist() == [1, 2]


def test_offer_many_matches_sequential_offers():
    rng = np.random.default_rng(4)
    indices = rng.permutation(50)
    values = np.round(rng.normal(size=50), 1)

    batched = CandidateTable(1, 7)
    batched.offer_many(0, indices[:20], values[:20])
    batched.offer_many(0, indices[20:], values[20:])

    sequential = CandidateTable(1, 7)
    for index, value in zip(indices, values):
        sequential.offer(0, int(index), float(value))

    assert np.array_equal(batched.result()[0], sequential.result()[0])
    assert np.array_equal(batched.result()[1], sequential.result()[1])

    order = np.lexsort((indices, -values))[:7]
    assert batched.result()[0][:, 0].tolist() == indices[order].tolist()


def test_offer_many_reports_insertions():
    table = CandidateTable(1, 2)
    assert table.offer_many(0, np.asarray([0, 1]), np.asarray([5.0, 4.0]))
    assert not table.offer_many(0, np.asarray([2, 3]), np.asarray([1.0, 4.0]))
    assert not table.offer_many(0, np.asarray([], dtype=np.int64), np.asarray([]))


def test_thresholds_and_result_layout():
    table = CandidateTable(3, 2)
    table.offer_many(0, np.asarray([0, 1]), np.asarray([1.0, 2.0]))
    table.offer(1, 0, 5.0)

    thresholds = table.thresholds()
    assert thresholds[0] == 1.0
    assert thresholds[1] == -np.inf
    assert table.thresholds(np.asarray([0])).tolist() == [1.0]

    indices, values = table.result()
    assert indices.shape == values.shape == (2, 3)
    assert indices[:, 0].tolist() == [1, 0]
    assert indices[:, 2].tolist() == [-1, -1]


def test_k_must_be_positive():
    with pytest.raises(ValueError):
        CandidateTable(1, 0)


def test_nan_ranks_below_every_value():
    table = CandidateTable(1, 2)
    row = table.row(0)
    row.offer(0, np.nan)
    row.offer(1, np.nan)

    assert row.full
    assert row.threshold == -np.inf
    assert row.offer(5, -np.inf)
    assert not row.offer(3, np.nan)
    assert row.offer_many(np.asarray([7, 8]), np.asarray([np.nan, 2.0]))

    indices, values = row.entries()
    assert indices.tolist() == [8, 5]
    assert values.tolist() == [2.0, -np.inf]


def test_nan_entries_tie_by_index():
    table = CandidateTable(1, 2)
    table.offer_many(0, np.asarray([4, 6]), np.asarray([np.nan, np.nan]))

    assert table.offer(0, 2, np.nan)
    assert table.row(0).entries()[0].tolist() == [2, 4]


def test_offer_block_matches_row_offers():
    rng = np.random.default_rng(9)
    block = np.round(rng.normal(size=(4, 12)), 1)
    block[2, 3] = np.nan
    columns = rng.permutation(30)[:12]

    blocked = CandidateTable(4, 5)
    blocked.offer(1, int(columns[0]), float(block[1, 0]))
    changed = blocked.offer_block(np.arange(4), columns, block)

    rowwise = CandidateTable(4, 5)
    rowwise.offer(1, int(columns[0]), float(block[1, 0]))
    for query in range(4):
        rowwise.offer_many(query, columns, block[query])

    assert changed.tolist() == [True, True, True, True]
    assert np.array_equal(blocked.result()[0], rowwise.result()[0])
    assert np.array_equal(blocked.result()[1], rowwise.result()[1])
    assert not blocked.offer_block(np.asarray([0]), columns[:3], block[:1, :3]).any()


def test_offer_block_skips_indices_already_present():
    table = CandidateTable(2, 3)
    table.offer(0, 1, 9.0)

    changed = table.offer_block(
        np.asarray([0, 1]), np.asarray([1, 2]), np.asarray([[9.0, 1.0], [3.0, 4.0]])
    )

    assert changed.tolist() == [True, True]
    assert table.row(0).entries()[0].tolist() == [1, 2]
    assert table.row(1).entries()[0].tolist() == [2, 1]
    assert table.size(0) == 2
