"""Tests for the dual-indexed feedback store."""

import numpy as np
import pytest

from src.recommender.exceptions import InvalidIdError
from src.recommender.feedback import IncidenceStore


def assert_views_agree(store: IncidenceStore, num_users: int, num_items: int) -> None:
    for u in range(num_users):
        for i in range(num_items):
            assert (i in store.items_of(u)) == (u in store.users_of(i))
    store.check_consistency()


def test_scenario_id_space_and_add(scenario_store: IncidenceStore) -> None:
    """Loading the scenario registers IDs without edges; add grows the views."""
    assert scenario_store.max_user_id == 3
    assert scenario_store.max_item_id == 4
    assert scenario_store.size() == 6
    assert scenario_store.items_of(3) == frozenset()

    scenario_store.add(3, 4)

    assert scenario_store.items_of(3) == {4}
    assert 3 in scenario_store.users_of(4)
    assert scenario_store.size() == 7


def test_empty_store() -> None:
    store = IncidenceStore()

    assert store.max_user_id == -1
    assert store.max_item_id == -1
    assert len(store) == 0
    assert store.to_csr().shape == (0, 0)


def test_dual_index_consistency_under_random_mutations() -> None:
    """Row and column views agree after any sequence of adds and removes."""
    rng = np.random.default_rng(0)
    store = IncidenceStore()

    for _ in range(500):
        u, i = int(rng.integers(8)), int(rng.integers(6))
        if rng.random() < 0.6:
            store.add(u, i)
        else:
            store.remove(u, i)

    assert_views_agree(store, 8, 6)
    assert store.size() == sum(1 for _ in store.edges())


def test_add_then_remove_restores_store(scenario_store: IncidenceStore) -> None:
    before = scenario_store.copy()

    scenario_store.add(1, 4)
    scenario_store.remove(1, 4)

    assert scenario_store == before
    assert scenario_store.size() == before.size()
    assert list(scenario_store.edges()) == list(before.edges())


def test_add_duplicate_is_noop(scenario_store: IncidenceStore) -> None:
    scenario_store.add(0, 0)

    assert scenario_store.size() == 6
    assert scenario_store.users_of(0) == {0, 2}


def test_remove_missing_edge(scenario_store: IncidenceStore) -> None:
    assert scenario_store.remove(1, 0) is False
    assert scenario_store.remove(3, 4) is False
    assert scenario_store.remove(0, 1) is True
    assert scenario_store.size() == 5


def test_remove_user_and_item(scenario_store: IncidenceStore) -> None:
    assert scenario_store.remove_user(2) == 3
    assert scenario_store.users_of(0) == {0}
    assert scenario_store.users_of(3) == frozenset()

    assert scenario_store.remove_item(0) == 1
    assert scenario_store.items_of(0) == {1}
    assert scenario_store.size() == 2

    # ID space never shrinks inside the store
    assert scenario_store.max_user_id == 3
    assert_views_agree(scenario_store, 4, 5)


def test_negative_ids_rejected() -> None:
    store = IncidenceStore()

    with pytest.raises(InvalidIdError):
        store.add(-1, 0)
    with pytest.raises(InvalidIdError):
        store.register_item(-3)


def test_csr_round_trip(scenario_store: IncidenceStore) -> None:
    matrix = scenario_store.to_csr()

    assert matrix.shape == (4, 5)
    assert matrix.nnz == 6
    assert matrix[2, 3] == 1

    restored = IncidenceStore.from_csr(matrix)
    assert restored == scenario_store
    assert restored.max_user_id == 3
    assert restored.max_item_id == 4


def test_queries(scenario_store: IncidenceStore) -> None:
    assert scenario_store.all_users == [0, 1, 2]
    assert scenario_store.all_items == [0, 1, 2, 3]
    assert scenario_store.num_active_items == 4
    assert scenario_store.num_items_of(2) == 3
    assert (2, 3) in scenario_store
    assert (3, 0) not in scenario_store

    users, items = scenario_store.edge_arrays()
    assert users.tolist() == [0, 0, 1, 2, 2, 2]
    assert items.tolist() == [0, 1, 2, 0, 2, 3]
