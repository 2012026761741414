"""Immutable sparse user x item rating store."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import scipy.sparse as sp

from .data import RatingTriples, as_index, validate_triples
from .errors import InvalidIndexError


logger = logging.getLogger(__name__)


def _check_range(indices: np.ndarray, size: int, kind: str) -> None:
    if not len(indices):
        return
    bad = (indices < 0) | (indices >= size)
    if bad.any():
        raise InvalidIndexError(kind, int(indices[bad][0]), size)


class RatingStore:
    """Observed ratings keyed by dense (user, item) indices.

    Rows are served from a CSR copy and columns from a CSC copy of the same
    matrix. Absent entries mean "unobserved", never "rated zero".
    """

    def __init__(self, triples: RatingTriples, *, n_users: int | None = None, n_items: int | None = None) -> None:
        if n_users is None:
            n_users = int(triples.user_idx.max()) + 1 if len(triples) else 0
        if n_items is None:
            n_items = int(triples.item_idx.max()) + 1 if len(triples) else 0
        self._n_users = int(n_users)
        self._n_items = int(n_items)

        _check_range(triples.user_idx, self._n_users, "user")
        _check_range(triples.item_idx, self._n_items, "item")
        validate_triples(triples)

        csr = sp.csr_matrix(
            (triples.rating, (triples.user_idx, triples.item_idx)),
            shape=(self._n_users, self._n_items),
            dtype=np.float64,
        )
        csr.sort_indices()
        csc = csr.tocsc()
        csc.sort_indices()
        self._csr = csr
        self._csc = csc

        logger.info("RatingStore: users=%d items=%d ratings=%d", self._n_users, self._n_items, self.nnz)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, *, n_users: int | None = None, n_items: int | None = None) -> "RatingStore":
        return cls(RatingTriples.from_frame(df), n_users=n_users, n_items=n_items)

    @property
    def n_users(self) -> int:
        return self._n_users

    @property
    def n_items(self) -> int:
        return self._n_items

    @property
    def shape(self) -> tuple[int, int]:
        return self._n_users, self._n_items

    @property
    def nnz(self) -> int:
        return int(self._csr.nnz)

    def __len__(self) -> int:
        return self.nnz

    def __repr__(self) -> str:
        return f"RatingStore(n_users={self._n_users}, n_items={self._n_items}, nnz={self.nnz})"

    @property
    def matrix(self) -> sp.csr_matrix:
        """A CSR copy of the user x item matrix."""
        return self._csr.copy()

    def check_user(self, user: int) -> int:
        return as_index(user, "user", self._n_users)

    def check_item(self, item: int) -> int:
        return as_index(item, "item", self._n_items)

    def rating(self, user: int, item: int) -> float | None:
        """Observed rating for (user, item), or None when unobserved."""
        u = self.check_user(user)
        i = self.check_item(item)
        start, end = self._csr.indptr[u], self._csr.indptr[u + 1]
        cols = self._csr.indices[start:end]
        pos = int(np.searchsorted(cols, i))
        if pos < len(cols) and cols[pos] == i:
            return float(self._csr.data[start + pos])
        return None

    def __contains__(self, pair: object) -> bool:
        user, item = pair  # type: ignore[misc]
        return self.rating(user, item) is not None

    def items_rated_by(self, user: int) -> tuple[np.ndarray, np.ndarray]:
        """(item indices, ratings) of everything `user` rated, ascending by item."""
        u = self.check_user(user)
        start, end = self._csr.indptr[u], self._csr.indptr[u + 1]
        return self._csr.indices[start:end].astype(np.int64), self._csr.data[start:end].copy()

    def users_who_rated(self, item: int) -> tuple[np.ndarray, np.ndarray]:
        """(user indices, ratings) of everyone who rated `item`, ascending by user."""
        i = self.check_item(item)
        start, end = self._csc.indptr[i], self._csc.indptr[i + 1]
        return self._csc.indices[start:end].astype(np.int64), self._csc.data[start:end].copy()

    def user_counts(self) -> np.ndarray:
        return np.diff(self._csr.indptr).astype(np.int64)

    def item_counts(self) -> np.ndarray:
        return np.diff(self._csc.indptr).astype(np.int64)

    def global_mean(self) -> float:
        if self.nnz == 0:
            return 0.0
        return float(self._csr.data.mean())

    def triples(self) -> RatingTriples:
        """Observed ratings in row-major (user, then item) order."""
        coo = self._csr.tocoo()
        return RatingTriples(coo.row, coo.col, coo.data)
