from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidIndexError, LengthMismatchError


REQUIRED_COLUMNS: Tuple[str, ...] = ("user_idx", "item_idx", "rating")


def as_index_array(values: object, *, name: str = "index") -> np.ndarray:
    """Coerce `values` to a flat int64 array, rejecting fractional entries.

    Whole-valued floats (as pandas produces for integer columns with gaps)
    are accepted; 1.5 or NaN raise ValueError instead of being truncated.
    """
    arr = np.asarray(values).reshape(-1)
    if arr.dtype.kind in "iu":
        return arr.astype(np.int64)
    if arr.dtype.kind == "f":
        bad = ~np.isfinite(arr)
        bad[~bad] = np.mod(arr[~bad], 1) != 0
        if bad.any():
            raise ValueError(f"{name} contains non-integral values: {arr[bad][:5].tolist()}")
        return arr.astype(np.int64)
    raise ValueError(f"{name} must hold integers, got dtype {arr.dtype}")


def as_index(value: object, kind: str, size: int) -> int:
    """Validate one dense index against [0, size)."""
    if isinstance(value, (bool, np.bool_)):
        raise InvalidIndexError(kind, value, size)
    if isinstance(value, (int, np.integer)):
        index = int(value)
    elif isinstance(value, (float, np.floating)) and float(value).is_integer():
        index = int(value)
    else:
        raise InvalidIndexError(kind, value, size)
    if index < 0 or index >= size:
        raise InvalidIndexError(kind, index, size)
    return index


@dataclass(frozen=True)
class RatingTriples:
    """Aligned (user index, item index, rating) columns.

    This is the hand-off format from the data preparation stage: ids are
    already remapped to dense integers and zero ratings already dropped.
    """

    user_idx: np.ndarray
    item_idx: np.ndarray
    rating: np.ndarray

    def __post_init__(self) -> None:
        user_idx = as_index_array(self.user_idx, name="user_idx")
        item_idx = as_index_array(self.item_idx, name="item_idx")
        rating = np.asarray(self.rating, dtype=np.float64).reshape(-1)
        if not (len(user_idx) == len(item_idx) == len(rating)):
            raise LengthMismatchError(
                f"user_idx/item_idx/rating length mismatch: {len(user_idx)} vs {len(item_idx)} vs {len(rating)}"
            )
        object.__setattr__(self, "user_idx", user_idx)
        object.__setattr__(self, "item_idx", item_idx)
        object.__setattr__(self, "rating", rating)

    def __len__(self) -> int:
        return int(len(self.rating))

    def __iter__(self) -> Iterator[tuple[int, int, float]]:
        for u, i, r in zip(self.user_idx.tolist(), self.item_idx.tolist(), self.rating.tolist()):
            yield int(u), int(i), float(r)

    @classmethod
    def empty(cls) -> "RatingTriples":
        return cls(np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64))

    @classmethod
    def from_records(cls, records: Iterable[tuple[int, int, float]]) -> "RatingTriples":
        rows = list(records)
        if not rows:
            return cls.empty()
        users, items, ratings = zip(*rows)
        return cls(np.asarray(users), np.asarray(items), np.asarray(ratings))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        *,
        user_col: str = "user_idx",
        item_col: str = "item_idx",
        rating_col: str = "rating",
    ) -> "RatingTriples":
        missing = [c for c in (user_col, item_col, rating_col) if c not in df.columns]
        if missing:
            raise ValueError(f"ratings frame missing required columns: {missing}")
        return cls(
            df[user_col].to_numpy(),
            df[item_col].to_numpy(),
            df[rating_col].to_numpy(dtype=np.float64),
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"user_idx": self.user_idx, "item_idx": self.item_idx, "rating": self.rating})

    def take(self, positions: np.ndarray) -> "RatingTriples":
        positions = np.asarray(positions, dtype=np.int64)
        return RatingTriples(self.user_idx[positions], self.item_idx[positions], self.rating[positions])


def validate_triples(triples: RatingTriples, *, name: str = "ratings") -> None:
    """Check the invariants the engine assumes of its input."""
    if len(triples) == 0:
        return

    if (triples.user_idx < 0).any() or (triples.item_idx < 0).any():
        raise ValueError(f"{name} contains negative user/item indices")

    if not np.isfinite(triples.rating).all():
        raise ValueError(f"{name} contains non-finite rating values")

    # Zero means "unobserved" in the sparse store, so zero ratings must be dropped upstream.
    if (triples.rating <= 0).any():
        bad_values = sorted(set(triples.rating[triples.rating <= 0].tolist()))
        raise ValueError(f"{name} contains non-positive rating values: {bad_values}")

    pairs = pd.DataFrame({"u": triples.user_idx, "i": triples.item_idx})
    if pairs.duplicated().any():
        raise ValueError(f"{name} contains duplicate (user_idx, item_idx) rows")


def load_ratings_csv(path: Path) -> RatingTriples:
    """Load a cleaned ratings CSV with columns user_idx, item_idx, rating."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Ratings file not found: {path}")

    df = pd.read_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} missing columns: {missing}")

    try:
        triples = RatingTriples.from_frame(df)
    except ValueError as exc:
        raise ValueError(f"{path.name}: {exc}") from exc
    validate_triples(triples, name=path.name)
    return triples


@dataclass(frozen=True)
class RatingSplit:
    train: RatingTriples
    test: RatingTriples
    n_users: int
    n_items: int


def _dense_size(declared: int | None, *columns: np.ndarray) -> int:
    observed = max((int(c.max()) + 1 for c in columns if len(c)), default=0)
    if declared is None:
        return observed
    if int(declared) < observed:
        raise ValueError(f"declared size {declared} is smaller than the largest observed index + 1 ({observed})")
    return int(declared)


def load_rating_split(
    data_dir: Path,
    *,
    train_file: str = "train.csv",
    test_file: str = "test.csv",
    n_users: int | None = None,
    n_items: int | None = None,
) -> RatingSplit:
    """Load an already-partitioned train/held-out pair.

    The dense index ranges default to cover both files, so held-out users or
    items missing from training stay addressable (they are cold-start cases).
    """
    train = load_ratings_csv(Path(data_dir) / train_file)
    test = load_ratings_csv(Path(data_dir) / test_file)
    return RatingSplit(
        train=train,
        test=test,
        n_users=_dense_size(n_users, train.user_idx, test.user_idx),
        n_items=_dense_size(n_items, train.item_idx, test.item_idx),
    )
