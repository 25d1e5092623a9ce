from __future__ import annotations

from typing import Tuple

import numpy as np

_EMPTY_INDEX = -1


def _outranks(values, indices, other_values, other_indices) -> np.ndarray:
    """Mask of entries ranking strictly above the ``other`` entries.

    Values order descending with NaN below everything (including -inf); equal
    values, NaN included, order by ascending index.
    """

    values = np.asarray(values, dtype=np.float64)
    other_values = np.asarray(other_values, dtype=np.float64)
    lower_index = np.asarray(indices) < np.asarray(other_indices)
    other_nan = np.isnan(other_values)
    above = (values > other_values) | ((values == other_values) & lower_index)
    return np.where(np.isnan(values), other_nan & lower_index, other_nan | above)


class CandidateTable:
    """Fixed-capacity top-k lists for a batch of queries.

    Row ``q`` holds query ``q``'s candidates sorted by kernel value descending,
    ties broken by ascending reference index, NaN values last. Once a row is
    full, a new entry is admitted only when it ranks strictly above the current
    k-th entry under that order, so an equal value with a larger index keeps
    the existing entry. A reference index is never stored twice in the same
    row.
    """

    def __init__(self, num_queries: int, k: int) -> None:
        if k <= 0:
            raise ValueError("k must be positive.")
        self.k = int(k)
        self.num_queries = int(num_queries)
        self._indices = np.full((self.num_queries, self.k), _EMPTY_INDEX, dtype=np.int64)
        self._values = np.full((self.num_queries, self.k), -np.inf, dtype=np.float64)
        self._sizes = np.zeros(self.num_queries, dtype=np.int64)

    def __len__(self) -> int:
        return self.num_queries

    def row(self, query: int) -> "CandidateList":
        return CandidateList(self, int(query))

    def size(self, query: int) -> int:
        return int(self._sizes[query])

    def is_full(self, query: int) -> bool:
        return int(self._sizes[query]) >= self.k

    def threshold(self, query: int) -> float:
        """Smallest value a new entry must reach to possibly be admitted.

        This is the k-th best value, or -inf while fewer than k entries exist
        or while the k-th entry is NaN (every non-NaN value outranks it).
        """

        if self._sizes[query] < self.k:
            return -np.inf
        value = float(self._values[query, self.k - 1])
        return -np.inf if np.isnan(value) else value

    def thresholds(self, queries: np.ndarray | None = None) -> np.ndarray:
        rows = slice(None) if queries is None else np.asarray(queries, dtype=np.int64)
        values = self._values[rows, self.k - 1].copy()
        values[(self._sizes[rows] < self.k) | np.isnan(values)] = -np.inf
        return values

    def offer(self, query: int, index: int, value: float) -> bool:
        """Offer one (index, value) entry; return whether it was inserted."""

        size = int(self._sizes[query])
        indices = self._indices[query]
        values = self._values[query]
        if size == self.k and not _outranks(
            value, index, values[size - 1], indices[size - 1]
        ):
            return False
        if index in indices[:size]:
            return False

        worse = _outranks(value, index, values[:size], indices[:size])
        position = int(np.argmax(worse)) if worse.any() else size
        stop = min(size, self.k - 1)
        values[position + 1 : stop + 1] = values[position:stop].copy()
        indices[position + 1 : stop + 1] = indices[position:stop].copy()
        values[position] = value
        indices[position] = index
        self._sizes[query] = min(size + 1, self.k)
        return True

    def offer_many(self, query: int, indices: np.ndarray, values: np.ndarray) -> bool:
        """Offer a batch of entries for one query; return whether any was inserted."""

        new_indices = np.asarray(indices, dtype=np.int64).ravel()
        new_values = np.asarray(values, dtype=np.float64).ravel()
        if new_indices.size == 0:
            return False
        size = int(self._sizes[query])
        row_indices = self._indices[query]
        row_values = self._values[query]

        if size == self.k:
            admit = _outranks(
                new_values, new_indices, row_values[size - 1], row_indices[size - 1]
            )
            if not admit.any():
                return False
            new_indices = new_indices[admit]
            new_values = new_values[admit]
        if size:
            fresh = ~np.isin(new_indices, row_indices[:size])
            if not fresh.all():
                new_indices = new_indices[fresh]
                new_values = new_values[fresh]
                if new_indices.size == 0:
                    return False
        _, first = np.unique(new_indices, return_index=True)
        if first.size < new_indices.size:
            first.sort()
            new_indices = new_indices[first]
            new_values = new_values[first]

        merged_indices = np.concatenate((row_indices[:size], new_indices))
        merged_values = np.concatenate((row_values[:size], new_values))
        # lexsort places NaN keys last, matching the ranking above.
        keep = np.lexsort((merged_indices, -merged_values))[: self.k]
        count = keep.shape[0]
        row_indices[:count] = merged_indices[keep]
        row_values[:count] = merged_values[keep]
        self._sizes[query] = count
        return bool(np.any(keep >= size))

    def offer_block(
        self, queries: np.ndarray, indices: np.ndarray, values: np.ndarray
    ) -> np.ndarray:
        """Offer a kernel block: ``values[r, c]`` scores ``indices[c]`` for ``queries[r]``.

        ``queries`` and ``indices`` must each be free of repeats. Returns a mask
        of the rows whose list changed.
        """

        rows = np.asarray(queries, dtype=np.int64).ravel()
        columns = np.asarray(indices, dtype=np.int64).ravel()
        if rows.size == 0 or columns.size == 0:
            return np.zeros(rows.size, dtype=bool)
        block = np.asarray(values, dtype=np.float64).reshape(rows.size, columns.size)

        current_indices = self._indices[rows]
        current_values = self._values[rows]
        slots = np.arange(self.k)
        live = slots[None, :] < self._sizes[rows][:, None]
        offered = np.broadcast_to(columns, block.shape)
        present = (
            (offered[:, :, None] == current_indices[:, None, :]) & live[:, None, :]
        ).any(axis=2)

        merged_indices = np.concatenate((current_indices, offered), axis=1)
        merged_values = np.concatenate((current_values, block), axis=1)
        dropped = np.concatenate((~live, present), axis=1)
        order = np.lexsort((merged_indices, -merged_values, dropped), axis=-1)[:, : self.k]

        sizes = np.minimum(np.count_nonzero(~dropped, axis=1), self.k)
        filled = slots[None, :] < sizes[:, None]
        self._indices[rows] = np.where(
            filled, np.take_along_axis(merged_indices, order, axis=1), _EMPTY_INDEX
        )
        self._values[rows] = np.where(
            filled, np.take_along_axis(merged_values, order, axis=1), -np.inf
        )
        self._sizes[rows] = sizes
        return ((order >= self.k) & filled).any(axis=1)

    def result(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(indices, values)`` shaped (k, num_queries), one column per query."""

        return self._indices.T.copy(), self._values.T.copy()


class CandidateList:
    """View of a single query's row inside a CandidateTable."""

    __slots__ = ("_table", "query")

    def __init__(self, table: CandidateTable, query: int) -> None:
        self._table = table
        self.query = query

    def __len__(self) -> int:
        return self._table.size(self.query)

    @property
    def capacity(self) -> int:
        return self._table.k

    @property
    def full(self) -> bool:
        return self._table.is_full(self.query)

    @property
    def threshold(self) -> float:
        return self._table.threshold(self.query)

    def offer(self, index: int, value: float) -> bool:
        return self._table.offer(self.query, index, value)

    def offer_many(self, indices: np.ndarray, values: np.ndarray) -> bool:
        return self._table.offer_many(self.query, indices, values)

    def entries(self) -> Tuple[np.ndarray, np.ndarray]:
        size = len(self)
        indices, values = self._table._indices[self.query], self._table._values[self.query]
        return indices[:size].copy(), values[:size].copy()


__all__ = ["CandidateList", "CandidateTable"]
