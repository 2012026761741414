from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np
import pandas as pd

from .data import RatingTriples
from .ensemble import RatingPredictor
from .errors import LengthMismatchError


logger = logging.getLogger(__name__)


def rmse(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Root-mean-squared error over two aligned sequences.

    Raises LengthMismatchError if the lengths differ. Two empty sequences
    score 0.0.
    """
    a = np.asarray(actual, dtype=np.float64).reshape(-1)
    p = np.asarray(predicted, dtype=np.float64).reshape(-1)
    if a.shape[0] != p.shape[0]:
        raise LengthMismatchError(f"actual/predicted length mismatch: {a.shape[0]} vs {p.shape[0]}")
    if a.shape[0] == 0:
        return 0.0
    return float(np.sqrt(np.mean((a - p) ** 2)))


@dataclass(frozen=True)
class EvaluationConfig:
    """Held-out sampling policy.

    Neighborhood predictions are costly per query, so by default they are
    scored on a seeded random sample of the held-out set while the models in
    `full_set_models` are scored on all of it. `sample_size=None` disables
    sampling entirely.
    """

    sample_size: int | None = 1000
    random_state: int = 42
    full_set_models: tuple[str, ...] = ("mf",)

    def __post_init__(self) -> None:
        if self.sample_size is not None and int(self.sample_size) < 1:
            raise ValueError(f"sample_size must be >= 1 or None, got {self.sample_size}")
        object.__setattr__(self, "full_set_models", tuple(self.full_set_models))


@dataclass(frozen=True)
class EvaluationResult:
    name: str
    rmse: float
    n_samples: int
    predictions: pd.DataFrame

    def to_dict(self) -> dict[str, Any]:
        return {"model": self.name, "rmse": self.rmse, "n_samples": self.n_samples}


def sample_heldout(heldout: RatingTriples, sample_size: int | None, *, random_state: int = 42) -> RatingTriples:
    """Seeded sample without replacement; the whole set if it is small enough."""
    if sample_size is None or int(sample_size) >= len(heldout):
        return heldout
    rng = np.random.default_rng(int(random_state))
    positions = np.sort(rng.choice(len(heldout), size=int(sample_size), replace=False))
    return heldout.take(positions)


def _predict_all(predictor: RatingPredictor, users: np.ndarray, items: np.ndarray) -> np.ndarray:
    if hasattr(predictor, "predict_many"):
        return np.asarray(predictor.predict_many(users, items), dtype=np.float64)
    return np.array(
        [predictor.predict_rating(u, i) for u, i in zip(users.tolist(), items.tolist())],
        dtype=np.float64,
    )


def evaluate_predictor(name: str, predictor: RatingPredictor, heldout: RatingTriples) -> EvaluationResult:
    """Score one predictor on every triple of `heldout`."""
    predicted = _predict_all(predictor, heldout.user_idx, heldout.item_idx)
    score = rmse(heldout.rating, predicted)
    frame = pd.DataFrame(
        {
            "user_idx": heldout.user_idx,
            "item_idx": heldout.item_idx,
            "actual": heldout.rating,
            "predicted": predicted,
        }
    )
    logger.info("Evaluation: model=%s n=%d rmse=%.4f", name, len(heldout), score)
    return EvaluationResult(name=name, rmse=score, n_samples=len(heldout), predictions=frame)


def evaluate_models(
    predictors: Mapping[str, RatingPredictor],
    heldout: RatingTriples,
    cfg: EvaluationConfig | None = None,
) -> list[EvaluationResult]:
    """Score several predictors; sampled ones all share the same sample."""
    cfg = cfg or EvaluationConfig()
    sample = sample_heldout(heldout, cfg.sample_size, random_state=cfg.random_state)
    if len(sample) < len(heldout):
        logger.info("Evaluation sample: %d of %d held-out ratings (seed=%d)", len(sample), len(heldout), cfg.random_state)

    results: list[EvaluationResult] = []
    for name, predictor in predictors.items():
        target = heldout if name in cfg.full_set_models else sample
        results.append(evaluate_predictor(name, predictor, target))
    return results


def results_frame(results: Sequence[EvaluationResult]) -> pd.DataFrame:
    return pd.DataFrame([r.to_dict() for r in results], columns=["model", "rmse", "n_samples"])
