"""Positive-only feedback storage.

``IncidenceStore`` is the dual-indexed sparse boolean relation between users
and items. It keeps a row view (user -> items) and a column view
(item -> users) in lock-step and is the single source of truth for
"which items has this user seen" during sampling and retraining.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

import numpy as np
from scipy.sparse import csr_matrix

from src.recommender.exceptions import InvalidIdError

# Configure module logger
logger = logging.getLogger(__name__)

_EMPTY: FrozenSet[int] = frozenset()


def _check_id(kind: str, entity_id: int) -> int:
    entity_id = int(entity_id)
    if entity_id < 0:
        raise InvalidIdError(kind, entity_id, "must be non-negative")
    return entity_id


class IncidenceStore:
    """Sparse set of (user, item) positive feedback edges.

    The store also tracks ``max_user_id`` and ``max_item_id``, the highest IDs
    known to the system (``-1`` when empty). Adding an edge grows them; IDs
    can also be registered without edges, e.g. items nobody has seen yet.
    Shrinking them is left to the incremental updater.

    Example:
        >>> store = IncidenceStore()
        >>> store.add(0, 1)
        >>> store.items_of(0)
        frozenset({1})
        >>> store.users_of(1)
        frozenset({0})
    """

    def __init__(self):
        self._user_items: Dict[int, Set[int]] = {}
        self._item_users: Dict[int, Set[int]] = {}
        self._num_edges = 0
        self.max_user_id = -1
        self.max_item_id = -1

    # ------------------------------------------------------------------
    # construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Tuple[int, int]],
        num_users: Optional[int] = None,
        num_items: Optional[int] = None,
    ) -> "IncidenceStore":
        """Build a store from (user, item) pairs.

        Args:
            pairs: Iterable of (user_id, item_id) tuples. Duplicates are ignored.
            num_users: Optional size of the user ID space; registers IDs up to
                ``num_users - 1`` even if they have no feedback.
            num_items: Same for items.
        """
        store = cls()
        for user_id, item_id in pairs:
            store.add(user_id, item_id)
        if num_users:
            store.register_user(num_users - 1)
        if num_items:
            store.register_item(num_items - 1)
        return store

    @classmethod
    def from_csr(cls, matrix: csr_matrix) -> "IncidenceStore":
        """Build a store from the non-zero entries of a sparse matrix.

        The matrix shape defines the user and item ID spaces.
        """
        matrix = csr_matrix(matrix)
        matrix.eliminate_zeros()
        rows, cols = matrix.nonzero()
        return cls.from_pairs(
            zip(rows.tolist(), cols.tolist()),
            num_users=matrix.shape[0],
            num_items=matrix.shape[1],
        )

    def to_csr(self) -> csr_matrix:
        """Export the edges as a binary CSR matrix.

        Shape is ``(max_user_id + 1, max_item_id + 1)``.
        """
        shape = (self.max_user_id + 1, self.max_item_id + 1)
        if self._num_edges == 0:
            return csr_matrix(shape, dtype=np.float32)

        users, items = zip(*self.edges())
        data = np.ones(len(users), dtype=np.float32)
        return csr_matrix((data, (users, items)), shape=shape, dtype=np.float32)

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------

    def register_user(self, user_id: int) -> None:
        """Make ``user_id`` part of the known user ID space."""
        user_id = _check_id("user", user_id)
        if user_id > self.max_user_id:
            self.max_user_id = user_id

    def register_item(self, item_id: int) -> None:
        """Make ``item_id`` part of the known item ID space."""
        item_id = _check_id("item", item_id)
        if item_id > self.max_item_id:
            self.max_item_id = item_id

    def add(self, user_id: int, item_id: int) -> None:
        """Insert an edge; no-op if it is already present."""
        user_id = _check_id("user", user_id)
        item_id = _check_id("item", item_id)

        items = self._user_items.setdefault(user_id, set())
        if item_id in items:
            return
        items.add(item_id)
        self._item_users.setdefault(item_id, set()).add(user_id)
        self._num_edges += 1

        if user_id > self.max_user_id:
            self.max_user_id = user_id
        if item_id > self.max_item_id:
            self.max_item_id = item_id

    def remove(self, user_id: int, item_id: int) -> bool:
        """Delete an edge.

        Returns:
            True if the edge existed, False otherwise.
        """
        user_id = _check_id("user", user_id)
        item_id = _check_id("item", item_id)

        items = self._user_items.get(user_id)
        if not items or item_id not in items:
            return False

        items.discard(item_id)
        users = self._item_users[item_id]
        assert user_id in users, f"column view lost edge ({user_id}, {item_id})"
        users.discard(user_id)
        self._num_edges -= 1

        if not items:
            del self._user_items[user_id]
        if not users:
            del self._item_users[item_id]
        return True

    def remove_user(self, user_id: int) -> int:
        """Remove every edge of a user.

        Returns:
            Number of removed edges.
        """
        user_id = _check_id("user", user_id)
        items = self._user_items.pop(user_id, set())
        for item_id in items:
            users = self._item_users[item_id]
            users.discard(user_id)
            if not users:
                del self._item_users[item_id]
        self._num_edges -= len(items)
        return len(items)

    def remove_item(self, item_id: int) -> int:
        """Remove every edge of an item.

        Returns:
            Number of removed edges.
        """
        item_id = _check_id("item", item_id)
        users = self._item_users.pop(item_id, set())
        for user_id in users:
            items = self._user_items[user_id]
            items.discard(item_id)
            if not items:
                del self._user_items[user_id]
        self._num_edges -= len(users)
        return len(users)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def items_of(self, user_id: int) -> FrozenSet[int]:
        """Items the user has positively interacted with (empty if unknown)."""
        items = self._user_items.get(int(user_id))
        return frozenset(items) if items else _EMPTY

    def users_of(self, item_id: int) -> FrozenSet[int]:
        """Users who positively interacted with the item (empty if unknown)."""
        users = self._item_users.get(int(item_id))
        return frozenset(users) if users else _EMPTY

    def contains(self, user_id: int, item_id: int) -> bool:
        items = self._user_items.get(user_id)
        return items is not None and item_id in items

    def __contains__(self, edge: Tuple[int, int]) -> bool:
        return self.contains(edge[0], edge[1])

    def num_items_of(self, user_id: int) -> int:
        items = self._user_items.get(user_id)
        return len(items) if items else 0

    def size(self) -> int:
        """Total number of edges."""
        return self._num_edges

    def __len__(self) -> int:
        return self._num_edges

    @property
    def all_users(self) -> List[int]:
        """Sorted IDs of users with at least one edge."""
        return sorted(self._user_items)

    @property
    def all_items(self) -> List[int]:
        """Sorted IDs of items with at least one edge."""
        return sorted(self._item_users)

    def non_empty_user_ids(self) -> List[int]:
        return self.all_users

    @property
    def num_active_items(self) -> int:
        """Number of items with at least one edge."""
        return len(self._item_users)

    def edges(self) -> Iterator[Tuple[int, int]]:
        """Iterate over all edges in (user, item) order."""
        for user_id in sorted(self._user_items):
            for item_id in sorted(self._user_items[user_id]):
                yield user_id, item_id

    def edge_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """All edges as two aligned int arrays (users, items)."""
        users = np.empty(self._num_edges, dtype=np.int64)
        items = np.empty(self._num_edges, dtype=np.int64)
        for index, (user_id, item_id) in enumerate(self.edges()):
            users[index] = user_id
            items[index] = item_id
        return users, items

    def copy(self) -> "IncidenceStore":
        clone = IncidenceStore()
        clone._user_items = {u: set(items) for u, items in self._user_items.items()}
        clone._item_users = {i: set(users) for i, users in self._item_users.items()}
        clone._num_edges = self._num_edges
        clone.max_user_id = self.max_user_id
        clone.max_item_id = self.max_item_id
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IncidenceStore):
            return NotImplemented
        return self._user_items == other._user_items

    def check_consistency(self) -> None:
        """Assert that the row and column views hold the same edges."""
        row_edges = sum(len(items) for items in self._user_items.values())
        col_edges = sum(len(users) for users in self._item_users.values())
        assert row_edges == self._num_edges, (
            f"row view has {row_edges} edges, expected {self._num_edges}"
        )
        assert col_edges == self._num_edges, (
            f"column view has {col_edges} edges, expected {self._num_edges}"
        )
        for user_id, items in self._user_items.items():
            assert items, f"empty row kept for user {user_id}"
            for item_id in items:
                assert user_id in self._item_users.get(item_id, _EMPTY), (
                    f"edge ({user_id}, {item_id}) missing from column view"
                )

    def __repr__(self) -> str:
        return (
            f"IncidenceStore(edges={self._num_edges}, "
            f"max_user_id={self.max_user_id}, max_item_id={self.max_item_id})"
        )
