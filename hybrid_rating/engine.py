"""Hybrid rating engine: user CF + item CF + latent factors, averaged."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .cf.neighborhood import NeighborhoodConfig, NeighborhoodPredictor
from .cf.similarity import Axis, Neighbor, rank_descending
from .data import RatingTriples, as_index_array
from .ensemble import EnsemblePredictor, RatingPredictor
from .evaluation import EvaluationConfig, EvaluationResult, evaluate_models
from .mf.predictor import LatentFactorPredictor
from .mf.train import LatentFactorConfig, train_latent_factors
from .store import RatingStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recommendation:
    item_idx: int
    score: float


@dataclass(frozen=True)
class HybridRatingEngine:
    """Owns every trained artifact derived from one RatingStore.

    Nothing here is module-global: two engines built from different stores
    are fully independent.
    """

    store: RatingStore
    user_cf: NeighborhoodPredictor
    item_cf: NeighborhoodPredictor
    mf: LatentFactorPredictor
    ensemble: EnsemblePredictor

    @classmethod
    def build(
        cls,
        store: RatingStore,
        *,
        neighborhood: NeighborhoodConfig | None = None,
        latent_factors: LatentFactorConfig | None = None,
        validation: RatingTriples | None = None,
        device: str | None = None,
    ) -> "HybridRatingEngine":
        logger.info("Building hybrid engine over %r", store)
        user_cf = NeighborhoodPredictor.fit(store, Axis.USER, neighborhood)
        item_cf = NeighborhoodPredictor.fit(store, Axis.ITEM, neighborhood)
        mf = train_latent_factors(store, latent_factors, validation=validation, device=device)
        ensemble = EnsemblePredictor({"user_cf": user_cf, "item_cf": item_cf, "mf": mf})
        return cls(store=store, user_cf=user_cf, item_cf=item_cf, mf=mf, ensemble=ensemble)

    def predictors(self) -> dict[str, RatingPredictor]:
        return {"user_cf": self.user_cf, "item_cf": self.item_cf, "mf": self.mf, "ensemble": self.ensemble}

    def predict(self, user: int, item: int) -> float:
        return self.ensemble.predict(user, item)

    def explain(self, user: int, item: int) -> dict[str, float]:
        """Per-model predictions plus the ensemble value."""
        parts = self.ensemble.predict_components(user, item)
        parts["ensemble"] = float(np.mean(list(parts.values())))
        return parts

    def similar_users(self, user: int, top_n: int = 10) -> list[Neighbor]:
        return self.user_cf.similarity.top_neighbors(self.store.check_user(user), top_n=top_n)

    def similar_items(self, item: int, top_n: int = 10) -> list[Neighbor]:
        return self.item_cf.similarity.top_neighbors(self.store.check_item(item), top_n=top_n)

    def recommend(self, user: int, n: int = 10, *, candidates: np.ndarray | None = None) -> list[Recommendation]:
        """Top-n unrated items for `user` by ensemble score.

        Scores every candidate (all items by default), so this is meant for
        small catalogs or a pre-filtered candidate list.
        """
        u = self.store.check_user(user)
        if candidates is None:
            candidates = np.arange(self.store.n_items, dtype=np.int64)
        candidates = as_index_array(candidates, name="candidates")
        for i in candidates.tolist():
            self.store.check_item(i)

        rated, _ = self.store.items_rated_by(u)
        candidates = candidates[~np.isin(candidates, rated)]
        if candidates.size == 0:
            return []

        scores = self.ensemble.predict_many(np.full(candidates.size, u), candidates)
        order = rank_descending(scores, candidates)[: int(n)]
        return [Recommendation(item_idx=int(candidates[j]), score=float(scores[j])) for j in order]

    def evaluate(self, heldout: RatingTriples, cfg: EvaluationConfig | None = None) -> list[EvaluationResult]:
        return evaluate_models(self.predictors(), heldout, cfg)
