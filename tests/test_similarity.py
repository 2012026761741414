from __future__ import annotations

import math

import numpy as np
import pytest
import scipy.sparse as sp

from hybrid_rating.cf.similarity import Axis, build_similarity, normalize_rows
from hybrid_rating.data import RatingTriples
from hybrid_rating.errors import InvalidIndexError
from hybrid_rating.store import RatingStore


def _dense(sim) -> np.ndarray:
    return sim.values if sim.is_dense else sim.values.toarray()


@pytest.mark.parametrize("axis", [Axis.USER, Axis.ITEM])
@pytest.mark.parametrize("dense_output", [True, False])
def test_similarity_is_symmetric_with_maximal_diagonal(small_store: RatingStore, axis: Axis, dense_output: bool) -> None:
    sim = build_similarity(small_store, axis, dense_output=dense_output)
    values = _dense(sim)

    np.testing.assert_allclose(values, values.T, atol=1e-12)
    for a in range(values.shape[0]):
        assert values[a, a] >= values[a].max() - 1e-12
        assert values[a, a] == pytest.approx(1.0)
    assert (values >= 0.0).all()


def test_user_similarity_values(tiny_store: RatingStore) -> None:
    sim = build_similarity(tiny_store, "user")
    # user 0 = (5, 3, 0), user 2 = (0, 2, 0)
    assert sim.similarity(2, 0) == pytest.approx(3.0 / math.sqrt(34.0))
    assert sim.similarity(0, 2) == sim.similarity(2, 0)
    assert sim.similarity(2, 1) == 0.0


def test_item_similarity_values(tiny_store: RatingStore) -> None:
    sim = build_similarity(tiny_store, Axis.ITEM)
    # item 0 = (5, 4, 0), item 1 = (3, 0, 2)
    assert sim.size == 3
    assert sim.similarity(0, 1) == pytest.approx(15.0 / (math.sqrt(41.0) * math.sqrt(13.0)))


def test_entity_without_ratings_has_all_zero_row() -> None:
    store = RatingStore(RatingTriples.from_records([(0, 0, 5.0), (1, 0, 3.0), (1, 1, 4.0)]), n_users=3, n_items=3)

    user_sim = build_similarity(store, Axis.USER)
    np.testing.assert_array_equal(user_sim.row(2), np.zeros(3))
    assert user_sim.top_neighbors(2) == []

    item_sim = build_similarity(store, Axis.ITEM)
    np.testing.assert_array_equal(item_sim.row(2), np.zeros(3))


def test_normalize_rows_leaves_zero_rows_untouched() -> None:
    m = sp.csr_matrix(np.array([[3.0, 4.0], [0.0, 0.0]]))
    normed = normalize_rows(m).toarray()
    np.testing.assert_allclose(normed[0], [0.6, 0.8])
    np.testing.assert_array_equal(normed[1], [0.0, 0.0])


def test_top_neighbors_orders_by_similarity_then_index() -> None:
    # users 1 and 2 point the same way as user 0; user 3 only partly.
    records = [
        (0, 0, 2.0),
        (1, 0, 4.0),
        (2, 0, 1.0),
        (3, 0, 1.0), (3, 1, 1.0),
    ]
    store = RatingStore(RatingTriples.from_records(records))
    sim = build_similarity(store, Axis.USER)

    neighbors = sim.top_neighbors(0, top_n=5)
    assert [n.index for n in neighbors] == [1, 2, 3]
    assert neighbors[0].similarity == pytest.approx(1.0)
    assert neighbors[2].similarity == pytest.approx(1.0 / math.sqrt(2.0))

    assert [n.index for n in sim.top_neighbors(0, top_n=1)] == [1]


def test_out_of_range_lookup_raises(tiny_store: RatingStore) -> None:
    sim = build_similarity(tiny_store, Axis.USER)
    with pytest.raises(InvalidIndexError):
        sim.row(3)
    with pytest.raises(InvalidIndexError):
        sim.similarity(0, -1)
