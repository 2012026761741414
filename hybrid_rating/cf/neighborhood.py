from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from ..data import as_index_array
from ..errors import LengthMismatchError
from ..store import RatingStore
from .similarity import Axis, Neighbor, SimilarityMatrix, build_similarity, rank_descending


logger = logging.getLogger(__name__)

# Returned when no candidate carries any similarity weight (empty candidate
# set, or all similarities zero). Predictions are otherwise unclipped.
DEGENERATE_FALLBACK: float = 0.0


@dataclass(frozen=True)
class NeighborhoodConfig:
    k: int = 15
    dense_similarity: bool = True

    def __post_init__(self) -> None:
        if int(self.k) < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")


class NeighborhoodPredictor:
    """k-nearest-neighbor weighted-average rating predictor.

    The same algorithm serves both CF flavours:
    - axis=USER: target is a user, counterpart an item; candidates are the
      users who rated the item, weighted by user-user similarity.
    - axis=ITEM: target is an item, counterpart a user; candidates are the
      items the user rated, weighted by item-item similarity.

    Prediction = sum(sim * rating) / sum(|sim|) over the top-k candidates,
    ranked by similarity desc with ties broken by ascending index.
    """

    def __init__(self, store: RatingStore, similarity: SimilarityMatrix, *, k: int = 15) -> None:
        if int(k) < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        expected = store.n_users if similarity.axis is Axis.USER else store.n_items
        if similarity.size != expected:
            raise ValueError(
                f"{similarity.axis.value} similarity has size {similarity.size}, store has {expected} {similarity.axis.value}s"
            )
        self.store = store
        self.similarity = similarity
        self.k = int(k)

    @classmethod
    def fit(cls, store: RatingStore, axis: Axis | str, cfg: NeighborhoodConfig | None = None) -> "NeighborhoodPredictor":
        cfg = cfg or NeighborhoodConfig()
        sim = build_similarity(store, axis, dense_output=bool(cfg.dense_similarity))
        return cls(store, sim, k=int(cfg.k))

    @property
    def axis(self) -> Axis:
        return self.similarity.axis

    def _check_target(self, target: int) -> int:
        if self.axis is Axis.USER:
            return self.store.check_user(target)
        return self.store.check_item(target)

    def _candidates(self, counterpart: int) -> tuple[np.ndarray, np.ndarray]:
        if self.axis is Axis.USER:
            return self.store.users_who_rated(counterpart)
        return self.store.items_rated_by(counterpart)

    def _select(self, target: int, counterpart: int, k: int | None) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        t = self._check_target(target)
        cand_idx, cand_ratings = self._candidates(counterpart)
        kk = self.k if k is None else int(k)
        if kk < 1:
            raise ValueError(f"k must be >= 1, got {kk}")
        if cand_idx.size == 0:
            return cand_idx, cand_ratings, np.empty(0, dtype=np.float64)

        sims = self.similarity.lookup(t, cand_idx)
        order = rank_descending(sims, cand_idx)[:kk]
        return cand_idx[order], cand_ratings[order], sims[order]

    def neighbors(self, target: int, counterpart: int, k: int | None = None) -> list[Neighbor]:
        """The neighbors a prediction for (target, counterpart) would use."""
        idx, _, sims = self._select(target, counterpart, k)
        return [Neighbor(index=int(j), similarity=float(s)) for j, s in zip(idx, sims)]

    def predict(self, target: int, counterpart: int, k: int | None = None) -> float:
        _, ratings, sims = self._select(target, counterpart, k)
        denom = float(np.abs(sims).sum())
        if denom == 0.0:
            logger.debug(
                "Degenerate %s neighborhood for target=%d counterpart=%d (candidates=%d); using fallback",
                self.axis.value,
                int(target),
                int(counterpart),
                int(sims.size),
            )
            return DEGENERATE_FALLBACK
        return float(np.dot(sims, ratings) / denom)

    def predict_rating(self, user: int, item: int) -> float:
        if self.axis is Axis.USER:
            return self.predict(user, item)
        return self.predict(item, user)

    def predict_many(self, users: np.ndarray, items: np.ndarray) -> np.ndarray:
        users = as_index_array(users, name="users")
        items = as_index_array(items, name="items")
        if len(users) != len(items):
            raise LengthMismatchError(f"users/items length mismatch: {len(users)} vs {len(items)}")
        return np.array([self.predict_rating(u, i) for u, i in zip(users.tolist(), items.tolist())], dtype=np.float64)
