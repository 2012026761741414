"""Ad-hoc queries against a freshly trained hybrid rating engine.

Trains on the configured training split, then answers one of:
- the predicted rating of (user, item), broken down per model
- the users most similar to a user
- the top-N unrated items for a user
"""
from __future__ import annotations

import argparse
from pathlib import Path

import pandas as pd

from .config import load_config
from .data import load_rating_split
from .engine import HybridRatingEngine
from .paths import ProjectPaths, get_repo_root
from .store import RatingStore
from .utils import setup_logging


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Hybrid rating prediction (user CF + item CF + latent factors)")
    p.add_argument("--user", type=int, required=True, help="Dense user index")
    p.add_argument("--item", type=int, default=None, help="Dense item index to predict a rating for")
    p.add_argument("--similar", type=int, default=0, help="How many similar users to show")
    p.add_argument("--recommend", type=int, default=0, help="How many item recommendations to return")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--device", type=str, default=None, help="cpu/cuda; default auto")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    if args.item is None and not args.similar and not args.recommend:
        raise SystemExit("Nothing to do: pass --item, --similar N or --recommend N")

    repo_root = get_repo_root()
    config_path = args.config if args.config.is_absolute() else (repo_root / args.config)
    cfg = load_config(config_path if config_path.exists() else None)
    setup_logging(cfg.log_level)

    paths = ProjectPaths.from_repo_root(repo_root, data_dir=cfg.data.data_dir)
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
        device=args.device,
    )

    if args.item is not None:
        print("\n=== Predicted Rating ===")
        parts = engine.explain(int(args.user), int(args.item))
        print(pd.DataFrame([parts]).to_string(index=False))

    if args.similar:
        print("\n=== Similar Users ===")
        sims = engine.similar_users(int(args.user), top_n=int(args.similar))
        if sims:
            print(pd.DataFrame([s.__dict__ for s in sims]).to_string(index=False))
        else:
            print("No similar users found (the user has no ratings in common with anyone).")

    if args.recommend:
        print("\n=== Recommended Items ===")
        recs = engine.recommend(int(args.user), n=int(args.recommend))
        if recs:
            print(pd.DataFrame([r.__dict__ for r in recs]).to_string(index=False))
        else:
            print("No recommendations found.")


if __name__ == "__main__":
    main()
