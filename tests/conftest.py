from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import hybrid_rating` works without installing the package.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from hybrid_rating.data import RatingTriples  # noqa: E402
from hybrid_rating.mf.train import LatentFactorConfig  # noqa: E402
from hybrid_rating.store import RatingStore  # noqa: E402


# user 0 rates item 0 = 5 and item 1 = 3; user 1 rates item 0 = 4; user 2 rates item 1 = 2.
TINY_RATINGS = [(0, 0, 5.0), (0, 1, 3.0), (1, 0, 4.0), (2, 1, 2.0)]

SMALL_RATINGS = [
    (0, 0, 5.0), (0, 1, 3.0), (0, 2, 4.0),
    (1, 0, 4.0), (1, 1, 2.0), (1, 3, 5.0),
    (2, 1, 2.0), (2, 2, 5.0), (2, 4, 3.0),
    (3, 0, 3.0), (3, 3, 4.0), (3, 4, 2.0),
    (4, 2, 4.0), (4, 3, 3.0), (4, 4, 5.0),
]


@pytest.fixture()
def tiny_store() -> RatingStore:
    return RatingStore(RatingTriples.from_records(TINY_RATINGS), n_users=3, n_items=3)


@pytest.fixture()
def small_store() -> RatingStore:
    return RatingStore(RatingTriples.from_records(SMALL_RATINGS), n_users=5, n_items=5)


@pytest.fixture()
def fast_mf_config() -> LatentFactorConfig:
    return LatentFactorConfig(n_factors=4, lr=0.01, epochs=10, random_state=7)
