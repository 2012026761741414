from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import torch

from ..data import as_index, as_index_array
from ..errors import InvalidIndexError, LengthMismatchError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EpochStats:
    epoch: int
    train_sse: float
    train_rmse: float
    objective: float
    val_rmse: float | None = None


class LatentFactorPredictor:
    """Rating predictor over trained user and item factor matrices.

    `predict(u, i)` is the unclipped dot product of the two factor rows.
    Users or items that had no training ratings (cold start) get the global
    mean training rating instead of a dot product of untrained noise.
    """

    def __init__(
        self,
        user_factors: np.ndarray,
        item_factors: np.ndarray,
        *,
        global_mean: float,
        seen_users: np.ndarray | None = None,
        seen_items: np.ndarray | None = None,
        history: Sequence[EpochStats] = (),
    ) -> None:
        user_factors = np.asarray(user_factors, dtype=np.float64)
        item_factors = np.asarray(item_factors, dtype=np.float64)
        if user_factors.ndim != 2 or item_factors.ndim != 2:
            raise ValueError("factor matrices must be 2-D")
        if user_factors.shape[1] != item_factors.shape[1]:
            raise ValueError(
                f"latent dimension mismatch: users={user_factors.shape[1]} items={item_factors.shape[1]}"
            )

        self.user_factors = user_factors
        self.item_factors = item_factors
        self.global_mean = float(global_mean)
        self.seen_users = (
            np.ones(user_factors.shape[0], dtype=bool) if seen_users is None else np.asarray(seen_users, dtype=bool)
        )
        self.seen_items = (
            np.ones(item_factors.shape[0], dtype=bool) if seen_items is None else np.asarray(seen_items, dtype=bool)
        )
        if self.seen_users.shape != (self.n_users,) or self.seen_items.shape != (self.n_items,):
            raise ValueError("seen masks must match the factor matrix row counts")
        self.history: list[EpochStats] = list(history)

    @property
    def n_users(self) -> int:
        return int(self.user_factors.shape[0])

    @property
    def n_items(self) -> int:
        return int(self.item_factors.shape[0])

    @property
    def n_factors(self) -> int:
        return int(self.user_factors.shape[1])

    def _check(self, user: int, item: int) -> tuple[int, int]:
        return as_index(user, "user", self.n_users), as_index(item, "item", self.n_items)

    def is_known(self, user: int, item: int) -> bool:
        u, i = self._check(user, item)
        return bool(self.seen_users[u] and self.seen_items[i])

    def predict(self, user: int, item: int) -> float:
        u, i = self._check(user, item)
        if not (self.seen_users[u] and self.seen_items[i]):
            return self.global_mean
        return float(self.user_factors[u] @ self.item_factors[i])

    def predict_rating(self, user: int, item: int) -> float:
        return self.predict(user, item)

    def predict_many(self, users: np.ndarray, items: np.ndarray) -> np.ndarray:
        users = as_index_array(users, name="users")
        items = as_index_array(items, name="items")
        if len(users) != len(items):
            raise LengthMismatchError(f"users/items length mismatch: {len(users)} vs {len(items)}")
        if len(users) == 0:
            return np.empty(0, dtype=np.float64)

        bad_u = (users < 0) | (users >= self.n_users)
        if bad_u.any():
            raise InvalidIndexError("user", int(users[bad_u][0]), self.n_users)
        bad_i = (items < 0) | (items >= self.n_items)
        if bad_i.any():
            raise InvalidIndexError("item", int(items[bad_i][0]), self.n_items)

        dots = np.einsum("ij,ij->i", self.user_factors[users], self.item_factors[items])
        known = self.seen_users[users] & self.seen_items[items]
        return np.where(known, dots, self.global_mean)

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        torch.save(
            {
                "user_factors": torch.from_numpy(self.user_factors.copy()),
                "item_factors": torch.from_numpy(self.item_factors.copy()),
                "seen_users": torch.from_numpy(self.seen_users.copy()),
                "seen_items": torch.from_numpy(self.seen_items.copy()),
                "global_mean": self.global_mean,
                "history": [asdict(h) for h in self.history],
            },
            path,
        )
        logger.info("Saved latent factors (users=%d items=%d d=%d) to %s", self.n_users, self.n_items, self.n_factors, path)
        return path

    @classmethod
    def load(cls, path: Path) -> "LatentFactorPredictor":
        ckpt = torch.load(Path(path), map_location="cpu", weights_only=True)
        return cls(
            ckpt["user_factors"].numpy(),
            ckpt["item_factors"].numpy(),
            global_mean=float(ckpt["global_mean"]),
            seen_users=ckpt["seen_users"].numpy(),
            seen_items=ckpt["seen_items"].numpy(),
            history=[EpochStats(**h) for h in ckpt.get("history", [])],
        )
