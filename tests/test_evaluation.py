from __future__ import annotations

import math

import numpy as np
import pytest

from hybrid_rating.data import RatingTriples
from hybrid_rating.errors import LengthMismatchError
from hybrid_rating.evaluation import (
    EvaluationConfig,
    evaluate_models,
    evaluate_predictor,
    results_frame,
    rmse,
    sample_heldout,
)


class _Constant:
    def __init__(self, value: float) -> None:
        self.value = value

    def predict_rating(self, user: int, item: int) -> float:
        return self.value


def _heldout(n: int) -> RatingTriples:
    return RatingTriples(np.arange(n), np.arange(n) % 3, (np.arange(n) % 10) + 1.0)


def test_rmse_known_value() -> None:
    assert rmse([1.0, 2.0, 3.0], [1.0, 2.0, 5.0]) == pytest.approx(math.sqrt(4.0 / 3.0))


@pytest.mark.parametrize("x", [[3.0], [1.0, 7.5, 10.0], list(np.linspace(1, 10, 25))])
def test_rmse_of_perfect_prediction_is_zero(x: list[float]) -> None:
    assert rmse(x, x) == 0.0


def test_rmse_is_non_negative() -> None:
    rng = np.random.default_rng(0)
    for _ in range(5):
        a = rng.uniform(1, 10, size=20)
        p = rng.normal(5, 3, size=20)
        assert rmse(a, p) >= 0.0


def test_rmse_rejects_length_mismatch() -> None:
    with pytest.raises(LengthMismatchError):
        rmse([1.0, 2.0, 3.0, 4.0, 5.0], [1.0, 2.0, 3.0, 4.0])


def test_rmse_of_empty_sequences_is_zero() -> None:
    assert rmse([], []) == 0.0


def test_sampling_is_seeded_and_bounded() -> None:
    heldout = _heldout(50)
    a = sample_heldout(heldout, 10, random_state=5)
    b = sample_heldout(heldout, 10, random_state=5)
    c = sample_heldout(heldout, 10, random_state=6)

    assert len(a) == 10
    np.testing.assert_array_equal(a.user_idx, b.user_idx)
    assert not np.array_equal(a.user_idx, c.user_idx)
    assert len(set(a.user_idx.tolist())) == 10

    assert sample_heldout(heldout, None) is heldout
    assert sample_heldout(heldout, 500) is heldout


def test_evaluate_predictor_returns_per_sample_predictions() -> None:
    heldout = RatingTriples.from_records([(0, 0, 4.0), (1, 2, 2.0)])
    result = evaluate_predictor("const", _Constant(3.0), heldout)

    assert result.rmse == pytest.approx(1.0)
    assert result.n_samples == 2
    assert list(result.predictions.columns) == ["user_idx", "item_idx", "actual", "predicted"]
    assert result.predictions["predicted"].tolist() == [3.0, 3.0]


def test_evaluate_models_samples_all_but_full_set_models() -> None:
    heldout = _heldout(40)
    cfg = EvaluationConfig(sample_size=8, random_state=1, full_set_models=("mf",))
    results = evaluate_models({"user_cf": _Constant(5.0), "mf": _Constant(5.0), "ensemble": _Constant(4.0)}, heldout, cfg)

    by_name = {r.name: r for r in results}
    assert by_name["mf"].n_samples == 40
    assert by_name["user_cf"].n_samples == 8
    # Sampled models share one sample.
    assert by_name["user_cf"].predictions["user_idx"].tolist() == by_name["ensemble"].predictions["user_idx"].tolist()

    frame = results_frame(results)
    assert frame["model"].tolist() == ["user_cf", "mf", "ensemble"]
    assert (frame["rmse"] >= 0).all()


def test_evaluation_config_validation() -> None:
    with pytest.raises(ValueError):
        EvaluationConfig(sample_size=0)
    assert EvaluationConfig(full_set_models=["mf", "item_cf"]).full_set_models == ("mf", "item_cf")
