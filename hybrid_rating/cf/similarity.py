"""Cosine similarity between users (rows) or items (columns) of a RatingStore."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Union

import numpy as np
import scipy.sparse as sp
from sklearn.preprocessing import normalize

from ..data import as_index
from ..store import RatingStore


logger = logging.getLogger(__name__)


class Axis(str, enum.Enum):
    USER = "user"
    ITEM = "item"


SimilarityValues = Union[np.ndarray, sp.csr_matrix]


@dataclass(frozen=True)
class Neighbor:
    index: int
    similarity: float


def axis_matrix(store: RatingStore, axis: Axis) -> sp.csr_matrix:
    """Rating matrix with one row per entity of `axis`."""
    m = store.matrix
    if Axis(axis) is Axis.ITEM:
        return m.T.tocsr()
    return m


def normalize_rows(matrix: sp.spmatrix) -> sp.csr_matrix:
    """L2-normalize each row; all-zero rows are left as zeros."""
    return normalize(sp.csr_matrix(matrix, dtype=np.float64), norm="l2", axis=1, copy=True)


def cosine_similarity_matrix(matrix: sp.spmatrix, *, dense_output: bool = True) -> SimilarityValues:
    """Pairwise cosine similarity between rows of `matrix`."""
    normed = normalize_rows(matrix)
    sim = normed @ normed.T
    # Sparse products may sum in different orders for (a, b) and (b, a).
    sim = (sim + sim.T) * 0.5
    if dense_output:
        return np.asarray(sim.toarray(), dtype=np.float64)
    return sp.csr_matrix(sim)


def rank_descending(similarities: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Positions ordered by similarity desc, ties by ascending entity index."""
    return np.lexsort((np.asarray(indices), -np.asarray(similarities, dtype=np.float64)))


@dataclass(frozen=True)
class SimilarityMatrix:
    """Square similarity matrix over one axis of a RatingStore."""

    axis: Axis
    values: SimilarityValues

    @property
    def size(self) -> int:
        return int(self.values.shape[0])

    @property
    def is_dense(self) -> bool:
        return isinstance(self.values, np.ndarray)

    def _check(self, index: int) -> int:
        return as_index(index, self.axis.value, self.size)

    def row(self, index: int) -> np.ndarray:
        a = self._check(index)
        if self.is_dense:
            return np.array(self.values[a], dtype=np.float64)
        return np.asarray(self.values.getrow(a).toarray(), dtype=np.float64).reshape(-1)

    def lookup(self, index: int, others: np.ndarray) -> np.ndarray:
        """Similarity of `index` to each entity in `others`."""
        others = np.asarray(others, dtype=np.int64)
        if self.is_dense:
            a = self._check(index)
            return np.asarray(self.values[a, others], dtype=np.float64)
        return self.row(index)[others]

    def similarity(self, a: int, b: int) -> float:
        b = self._check(b)
        return float(self.lookup(a, np.array([b]))[0])

    def top_neighbors(
        self,
        index: int,
        top_n: int = 10,
        *,
        exclude_self: bool = True,
        min_similarity: float = 0.0,
    ) -> list[Neighbor]:
        """Most similar entities to `index`, strongest first."""
        a = self._check(index)
        sims = self.row(a)
        candidates = np.arange(self.size, dtype=np.int64)
        keep = sims > float(min_similarity)
        if exclude_self:
            keep[a] = False
        candidates = candidates[keep]
        sims = sims[keep]

        order = rank_descending(sims, candidates)[: int(top_n)]
        return [Neighbor(index=int(candidates[j]), similarity=float(sims[j])) for j in order]


def build_similarity(store: RatingStore, axis: Axis | str, *, dense_output: bool = True) -> SimilarityMatrix:
    """Build the user x user or item x item cosine similarity matrix."""
    axis = Axis(axis)
    matrix = axis_matrix(store, axis)
    values = cosine_similarity_matrix(matrix, dense_output=dense_output)
    nnz = int(np.count_nonzero(values)) if isinstance(values, np.ndarray) else int(values.nnz)
    logger.info("Similarity: axis=%s entities=%d nonzero=%d dense=%s", axis.value, matrix.shape[0], nnz, dense_output)
    return SimilarityMatrix(axis=axis, values=values)
