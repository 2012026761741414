from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from hybrid_rating.config import EngineConfig, config_from_dict, load_config
from hybrid_rating.data import RatingTriples, load_rating_split, load_ratings_csv
from hybrid_rating.errors import LengthMismatchError


def _write(path: Path, rows: list[tuple[int, int, float]]) -> Path:
    pd.DataFrame(rows, columns=["user_idx", "item_idx", "rating"]).to_csv(path, index=False)
    return path


def test_load_ratings_csv(tmp_path: Path) -> None:
    path = _write(tmp_path / "train.csv", [(0, 1, 8.0), (2, 0, 5.0)])
    triples = load_ratings_csv(path)
    assert list(triples) == [(0, 1, 8.0), (2, 0, 5.0)]
    assert triples.user_idx.dtype == np.int64
    assert triples.rating.dtype == np.float64


def test_load_ratings_csv_rejects_bad_input(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_ratings_csv(tmp_path / "missing.csv")

    pd.DataFrame({"user_idx": [0], "rating": [3.0]}).to_csv(tmp_path / "cols.csv", index=False)
    with pytest.raises(ValueError, match="missing columns"):
        load_ratings_csv(tmp_path / "cols.csv")

    _write(tmp_path / "zero.csv", [(0, 0, 0.0)])
    with pytest.raises(ValueError, match="non-positive"):
        load_ratings_csv(tmp_path / "zero.csv")

    _write(tmp_path / "dup.csv", [(0, 0, 1.0), (0, 0, 2.0)])
    with pytest.raises(ValueError, match="duplicate"):
        load_ratings_csv(tmp_path / "dup.csv")


def test_load_ratings_csv_rejects_fractional_indices(tmp_path: Path) -> None:
    pd.DataFrame({"user_idx": [0.0, 1.5], "item_idx": [0, 1], "rating": [3.0, 4.0]}).to_csv(
        tmp_path / "frac.csv", index=False
    )
    with pytest.raises(ValueError, match="non-integral"):
        load_ratings_csv(tmp_path / "frac.csv")

    pd.DataFrame({"user_idx": [0, 1], "item_idx": [1, None], "rating": [3.0, 4.0]}).to_csv(
        tmp_path / "gap.csv", index=False
    )
    with pytest.raises(ValueError, match="non-integral"):
        load_ratings_csv(tmp_path / "gap.csv")


def test_load_ratings_csv_accepts_whole_valued_float_indices(tmp_path: Path) -> None:
    pd.DataFrame({"user_idx": [0.0, 2.0], "item_idx": [1, 0], "rating": [3.0, 4.0]}).to_csv(
        tmp_path / "floats.csv", index=False
    )
    triples = load_ratings_csv(tmp_path / "floats.csv")
    assert triples.user_idx.tolist() == [0, 2]
    assert triples.user_idx.dtype == np.int64


def test_split_ranges_cover_heldout_only_entities(tmp_path: Path) -> None:
    _write(tmp_path / "train.csv", [(0, 0, 4.0), (1, 1, 3.0)])
    _write(tmp_path / "test.csv", [(3, 0, 5.0), (0, 4, 2.0)])

    split = load_rating_split(tmp_path)
    assert (split.n_users, split.n_items) == (4, 5)
    assert len(split.train) == 2 and len(split.test) == 2

    with pytest.raises(ValueError):
        load_rating_split(tmp_path, n_users=2)


def test_triples_require_aligned_columns() -> None:
    with pytest.raises(LengthMismatchError):
        RatingTriples(np.array([0, 1]), np.array([0]), np.array([1.0, 2.0]))
    assert len(RatingTriples.from_records([])) == 0


@pytest.mark.parametrize(
    "user_idx,item_idx",
    [([0.9, 1.2], [0, 1]), ([0, 1], [0.0, 2.5]), (["a", "b"], [0, 1])],
)
def test_triples_reject_non_integral_indices(user_idx: list, item_idx: list) -> None:
    with pytest.raises(ValueError):
        RatingTriples(np.array(user_idx), np.array(item_idx), np.array([1.0, 2.0]))


def test_load_config_defaults_and_sections(tmp_path: Path) -> None:
    assert load_config(None) == EngineConfig()

    path = tmp_path / "config.yaml"
    path.write_text(
        "seed: 7\n"
        "neighborhood:\n  k: 5\n"
        "latent_factors:\n  n_factors: 8\n  lr: 0.05\n"
        "evaluation:\n  sample_size: null\n  full_set_models: [mf, ensemble]\n"
    )
    cfg = load_config(path)
    assert cfg.seed == 7
    assert cfg.neighborhood.k == 5
    assert cfg.latent_factors.n_factors == 8
    assert cfg.latent_factors.lr == 0.05
    assert cfg.latent_factors.reg_user == 0.1
    assert cfg.evaluation.sample_size is None
    assert cfg.evaluation.full_set_models == ("mf", "ensemble")
    assert cfg.data.train_file == "train.csv"


def test_config_rejects_unknown_keys_and_non_mappings(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="unknown keys"):
        config_from_dict({"neighborhood": {"k": 3, "kk": 4}})
    with pytest.raises(ValueError, match="top-level"):
        config_from_dict({"model": {}})
    with pytest.raises(ValueError):
        config_from_dict({"data": ["not", "a", "mapping"]})

    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_config(path)
