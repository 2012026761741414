from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
import torch
from torch.utils.data import DataLoader, Dataset

from ..data import RatingTriples
from ..errors import NoTrainingDataError, TrainingDivergedError
from ..evaluation import rmse
from ..store import RatingStore
from .model import LatentFactorModel
from .predictor import EpochStats, LatentFactorPredictor


logger = logging.getLogger(__name__)


class RatingsDataset(Dataset):
    def __init__(self, triples: RatingTriples) -> None:
        self.user_idx = torch.as_tensor(triples.user_idx, dtype=torch.long)
        self.item_idx = torch.as_tensor(triples.item_idx, dtype=torch.long)
        self.rating = torch.as_tensor(triples.rating, dtype=torch.float64)

    def __len__(self) -> int:
        return int(self.rating.shape[0])

    def __getitem__(self, i: int) -> dict[str, torch.Tensor]:
        return {
            "users": self.user_idx[i],
            "items": self.item_idx[i],
            "ratings": self.rating[i],
        }


@dataclass(frozen=True)
class LatentFactorConfig:
    n_factors: int = 20
    reg_user: float = 0.1
    reg_item: float = 0.1
    lr: float = 0.1
    epochs: int = 20
    batch_size: int = 1
    shuffle: bool = True
    init_std: float = 0.1
    n_threads: int | None = None
    random_state: int = 42

    def __post_init__(self) -> None:
        if int(self.n_factors) < 1:
            raise ValueError(f"n_factors must be >= 1, got {self.n_factors}")
        if int(self.epochs) < 0:
            raise ValueError(f"epochs must be >= 0, got {self.epochs}")
        if int(self.batch_size) < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if float(self.lr) <= 0.0:
            raise ValueError(f"lr must be > 0, got {self.lr}")
        if float(self.reg_user) < 0.0 or float(self.reg_item) < 0.0:
            raise ValueError("regularization strengths must be >= 0")
        if self.n_threads is not None and int(self.n_threads) < 1:
            raise ValueError(f"n_threads must be >= 1, got {self.n_threads}")


def _device_from_str(device: str | None) -> torch.device:
    # Sparse embedding gradients are supported on CPU and CUDA only.
    if device is None:
        return torch.device("cuda") if torch.cuda.is_available() else torch.device("cpu")
    return torch.device(str(device))


def regularized_loss(
    model: LatentFactorModel,
    users: torch.Tensor,
    items: torch.Tensor,
    ratings: torch.Tensor,
    cfg: LatentFactorConfig,
) -> torch.Tensor:
    """0.5 * (squared error + L2 penalties) summed over the batch.

    With batch_size=1 one SGD step on this loss is exactly
    p_u += lr * (e * q_i - reg_user * p_u), q_i += lr * (e * p_u - reg_item * q_i).
    """
    p = model.user_factors(users)
    q = model.item_factors(items)
    err = ratings - (p * q).sum(dim=1)
    return 0.5 * (
        err.pow(2).sum()
        + float(cfg.reg_user) * p.pow(2).sum()
        + float(cfg.reg_item) * q.pow(2).sum()
    )


def _snapshot(
    model: LatentFactorModel,
    *,
    global_mean: float,
    seen_users: np.ndarray,
    seen_items: np.ndarray,
    history: list[EpochStats],
) -> LatentFactorPredictor:
    with torch.no_grad():
        u = model.user_factors.weight.detach().cpu().numpy().copy()
        m = model.item_factors.weight.detach().cpu().numpy().copy()
    return LatentFactorPredictor(
        u,
        m,
        global_mean=global_mean,
        seen_users=seen_users,
        seen_items=seen_items,
        history=history,
    )


def train_latent_factors(
    store: RatingStore,
    cfg: LatentFactorConfig | None = None,
    *,
    validation: RatingTriples | None = None,
    device: str | None = None,
) -> LatentFactorPredictor:
    """Factorize the store's observed ratings with regularized SGD.

    Training runs a fixed number of passes (no early stopping). `validation`
    is only monitored and logged, never used for updates.
    """
    cfg = cfg or LatentFactorConfig()
    triples = store.triples()
    if len(triples) == 0:
        raise NoTrainingDataError("cannot train latent factors on an empty rating store")

    if cfg.n_threads is None:
        return _train(store, triples, cfg, validation=validation, device=device)

    previous_threads = torch.get_num_threads()
    torch.set_num_threads(int(cfg.n_threads))
    try:
        return _train(store, triples, cfg, validation=validation, device=device)
    finally:
        torch.set_num_threads(previous_threads)


def _train(
    store: RatingStore,
    triples: RatingTriples,
    cfg: LatentFactorConfig,
    *,
    validation: RatingTriples | None,
    device: str | None,
) -> LatentFactorPredictor:
    global_mean = store.global_mean()
    seen_users = store.user_counts() > 0
    seen_items = store.item_counts() > 0
    logger.info(
        "MF: users=%d items=%d ratings=%d mean_rating=%.4f d=%d",
        store.n_users,
        store.n_items,
        len(triples),
        global_mean,
        int(cfg.n_factors),
    )

    generator = torch.Generator().manual_seed(int(cfg.random_state))
    torch_device = _device_from_str(device)
    model = LatentFactorModel(
        store.n_users,
        store.n_items,
        n_factors=int(cfg.n_factors),
        init_std=float(cfg.init_std),
        generator=generator,
    ).to(torch_device)

    dataset = RatingsDataset(triples)
    loader = DataLoader(
        dataset,
        batch_size=int(cfg.batch_size),
        shuffle=bool(cfg.shuffle),
        generator=generator,
        num_workers=0,
    )
    optimizer = torch.optim.SGD(model.parameters(), lr=float(cfg.lr))

    all_users = dataset.user_idx.to(torch_device)
    all_items = dataset.item_idx.to(torch_device)
    all_ratings = dataset.rating.to(torch_device)

    logger.info(
        "MF training on device=%s epochs=%d batch_size=%d lr=%g reg_user=%g reg_item=%g",
        torch_device,
        int(cfg.epochs),
        int(cfg.batch_size),
        float(cfg.lr),
        float(cfg.reg_user),
        float(cfg.reg_item),
    )
    history: list[EpochStats] = []
    model.train()
    for epoch in range(int(cfg.epochs)):
        for batch in loader:
            users = batch["users"].to(torch_device)
            items = batch["items"].to(torch_device)
            ratings_t = batch["ratings"].to(torch_device)

            loss = regularized_loss(model, users, items, ratings_t, cfg)
            optimizer.zero_grad(set_to_none=True)
            loss.backward()
            optimizer.step()

        with torch.no_grad():
            err = all_ratings - model(all_users, all_items)
            sse = float(err.pow(2).sum().item())
            objective = float(regularized_loss(model, all_users, all_items, all_ratings, cfg).item())

        if not math.isfinite(sse):
            raise TrainingDivergedError(
                f"MF training diverged at epoch {epoch + 1} (lr={cfg.lr}); lower the learning rate"
            )

        val_rmse = None
        if validation is not None and len(validation):
            current = _snapshot(
                model, global_mean=global_mean, seen_users=seen_users, seen_items=seen_items, history=history
            )
            val_rmse = rmse(validation.rating, current.predict_many(validation.user_idx, validation.item_idx))

        stats = EpochStats(
            epoch=epoch + 1,
            train_sse=sse,
            train_rmse=float(np.sqrt(sse / len(triples))),
            objective=objective,
            val_rmse=val_rmse,
        )
        history.append(stats)
        if val_rmse is None:
            logger.info("MF epoch=%d train_rmse=%.4f objective=%.4f", stats.epoch, stats.train_rmse, objective)
        else:
            logger.info(
                "MF epoch=%d train_rmse=%.4f objective=%.4f val_rmse=%.4f",
                stats.epoch,
                stats.train_rmse,
                objective,
                val_rmse,
            )

    model.eval()
    return _snapshot(model, global_mean=global_mean, seen_users=seen_users, seen_items=seen_items, history=history)
