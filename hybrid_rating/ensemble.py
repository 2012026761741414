"""Unweighted ensemble over several rating predictors."""

from __future__ import annotations

from typing import Mapping, Protocol

import numpy as np

from .data import as_index_array
from .errors import LengthMismatchError


class RatingPredictor(Protocol):
    def predict_rating(self, user: int, item: int) -> float: ...


class EnsemblePredictor:
    """Arithmetic mean of the member predictors' outputs.

    Members are kept by name so a prediction can be broken down per model.
    """

    def __init__(self, members: Mapping[str, RatingPredictor]) -> None:
        if not members:
            raise ValueError("ensemble needs at least one member predictor")
        self.members: dict[str, RatingPredictor] = dict(members)

    def predict_components(self, user: int, item: int) -> dict[str, float]:
        return {name: float(p.predict_rating(user, item)) for name, p in self.members.items()}

    def predict(self, user: int, item: int) -> float:
        return float(np.mean(list(self.predict_components(user, item).values())))

    def predict_rating(self, user: int, item: int) -> float:
        return self.predict(user, item)

    def predict_many(self, users: np.ndarray, items: np.ndarray) -> np.ndarray:
        users = as_index_array(users, name="users")
        items = as_index_array(items, name="items")
        if len(users) != len(items):
            raise LengthMismatchError(f"users/items length mismatch: {len(users)} vs {len(items)}")
        return np.array([self.predict(u, i) for u, i in zip(users.tolist(), items.tolist())], dtype=np.float64)
