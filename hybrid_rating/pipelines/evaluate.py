from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

from ..config import EngineConfig, load_config
from ..data import load_rating_split
from ..engine import HybridRatingEngine
from ..evaluation import EvaluationResult, results_frame
from ..paths import ProjectPaths, get_repo_root
from ..store import RatingStore
from ..utils import ReproducibilityConfig, set_global_seed, setup_logging


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train the hybrid rating engine and score every model by RMSE.")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--data-dir", type=Path, default=None, help="Directory holding the train/test CSVs")
    p.add_argument("--out-dir", type=Path, default=None, help="Where to write metrics and predictions")
    p.add_argument("--device", type=str, default=None, help="cpu/cuda; default auto")
    p.add_argument("--k", type=int, default=None, help="Override neighborhood size")
    p.add_argument("--n-factors", type=int, default=None, help="Override latent dimension")
    p.add_argument("--epochs", type=int, default=None, help="Override number of SGD passes")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--sample-size", type=int, default=None, help="Override evaluation sample size")
    p.add_argument("--full-eval", action="store_true", help="Score every model on the whole held-out set")
    p.add_argument("--seed", type=int, default=None, help="Override sampling/initialisation seed")
    p.add_argument("--save-factors", action="store_true", help="Also write the trained latent factors")
    return p


def apply_overrides(cfg: EngineConfig, args: argparse.Namespace) -> EngineConfig:
    """Fold CLI flags over the values read from config.yaml."""
    neighborhood = cfg.neighborhood
    if args.k is not None:
        neighborhood = dataclasses.replace(neighborhood, k=int(args.k))

    mf_overrides: dict[str, Any] = {}
    if args.n_factors is not None:
        mf_overrides["n_factors"] = int(args.n_factors)
    if args.epochs is not None:
        mf_overrides["epochs"] = int(args.epochs)
    if args.lr is not None:
        mf_overrides["lr"] = float(args.lr)
    if args.seed is not None:
        mf_overrides["random_state"] = int(args.seed)
    latent_factors = dataclasses.replace(cfg.latent_factors, **mf_overrides)

    evaluation = cfg.evaluation
    if args.sample_size is not None:
        evaluation = dataclasses.replace(evaluation, sample_size=int(args.sample_size))
    if args.full_eval:
        evaluation = dataclasses.replace(evaluation, sample_size=None)
    if args.seed is not None:
        evaluation = dataclasses.replace(evaluation, random_state=int(args.seed))

    data = cfg.data
    if args.data_dir is not None:
        data = dataclasses.replace(data, data_dir=str(args.data_dir))

    return dataclasses.replace(
        cfg,
        data=data,
        neighborhood=neighborhood,
        latent_factors=latent_factors,
        evaluation=evaluation,
        seed=int(args.seed) if args.seed is not None else cfg.seed,
    )


def write_results(results: list[EvaluationResult], out_dir: Path, *, cfg: EngineConfig) -> dict[str, str]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: dict[str, str] = {}
    for r in results:
        path = out_dir / f"predictions_{r.name}.csv"
        r.predictions.to_csv(path, index=False)
        written[f"predictions_{r.name}"] = str(path)

    metrics_path = out_dir / "metrics.json"
    metrics = {
        "results": [r.to_dict() for r in results],
        "config": dataclasses.asdict(cfg),
    }
    metrics_path.write_text(json.dumps(metrics, indent=2, sort_keys=True) + "\n")
    written["metrics"] = str(metrics_path)
    return written


def run_evaluation(
    cfg: EngineConfig,
    *,
    repo_root: Path,
    out_dir: Path | None = None,
    device: str | None = None,
    save_factors: bool = False,
) -> list[EvaluationResult]:
    set_global_seed(ReproducibilityConfig(seed=int(cfg.seed), deterministic=True))

    paths = ProjectPaths.from_repo_root(repo_root, data_dir=cfg.data.data_dir)
    logger.info("Loading rating split from %s", paths.data_dir)
    split = load_rating_split(
        paths.data_dir,
        train_file=cfg.data.train_file,
        test_file=cfg.data.test_file,
        n_users=cfg.data.n_users,
        n_items=cfg.data.n_items,
    )
    store = RatingStore(split.train, n_users=split.n_users, n_items=split.n_items)

    engine = HybridRatingEngine.build(
        store,
        neighborhood=cfg.neighborhood,
        latent_factors=cfg.latent_factors,
        device=device,
    )
    results = engine.evaluate(split.test, cfg.evaluation)

    out_dir = Path(out_dir) if out_dir is not None else paths.evaluation_dir
    if not out_dir.is_absolute():
        out_dir = (repo_root / out_dir).resolve()
    written = write_results(results, out_dir, cfg=cfg)
    if save_factors:
        engine.mf.save(out_dir / "latent_factors.pt")
    logger.info("Evaluation complete; metrics at %s", written["metrics"])
    return results


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    repo_root = get_repo_root()
    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = (repo_root / config_path).resolve()

    cfg = load_config(config_path if config_path.exists() else None)
    cfg = apply_overrides(cfg, args)
    setup_logging(cfg.log_level)

    results = run_evaluation(
        cfg,
        repo_root=repo_root,
        out_dir=args.out_dir,
        device=args.device,
        save_factors=bool(args.save_factors),
    )

    print("\n=== RMSE by model ===")
    print(results_frame(results).to_string(index=False))


if __name__ == "__main__":
    main()
