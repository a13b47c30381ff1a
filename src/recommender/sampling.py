"""Training triple sampling.

A training triple ``(u, i, j)`` pairs a user with an item it has seen (``i``)
and one it has not (``j``). ``SamplingStrategy`` draws triples under four
policies spanned by two switches:

* ``uniform_user``: the anchor user is drawn uniformly among users that have
  at least one and fewer than all items observed. Otherwise a positive edge is
  drawn and its user becomes the anchor.
* ``with_replacement``: positives may repeat within an epoch. Without
  replacement, both anchors walk a shuffled order of the valid edges, so an
  epoch of ``store.size()`` triples visits every edge once. Uniform-user
  sampling then draws a uniform negative; uniform-pair sampling draws it from
  the item column of the edge list, i.e. proportionally to item popularity.

Negative items are drawn by rejection against the feedback store, or by
direct lookup in ``FastSamplingCache`` when the precomputed per-user tables
fit in the configured memory budget.
"""

import logging
from typing import Dict, Iterator, NamedTuple, Optional, Tuple

import numpy as np

from src.recommender.exceptions import SamplingExhaustedError
from src.recommender.feedback import IncidenceStore

# Configure module logger
logger = logging.getLogger(__name__)

# Bytes per precomputed item ID in the fast sampling tables
FAST_SAMPLING_BYTES_PER_ENTRY = 4


class SampleTriple(NamedTuple):
    """A user, one of its positive items and one of its negative items."""

    u: int
    i: int
    j: int


def fast_sampling_memory_mib(num_users: int, num_items: int) -> int:
    """Size in MiB of per-user positive/negative tables for the given ID space."""
    return (num_users * num_items * FAST_SAMPLING_BYTES_PER_ENTRY) // (1024 * 1024)


class FastSamplingCache:
    """Per-user arrays of positive and negative item IDs.

    The cache is derived data: ``IncidenceStore`` stays the source of truth
    and every change to a user's edges must be followed by ``refresh_user``.
    """

    def __init__(self):
        self.positives: Dict[int, np.ndarray] = {}
        self.negatives: Dict[int, np.ndarray] = {}
        self.num_items = 0

    @classmethod
    def build(cls, store: IncidenceStore) -> "FastSamplingCache":
        cache = cls()
        cache.num_items = store.max_item_id + 1
        for user_id in range(store.max_user_id + 1):
            cache.refresh_user(store, user_id)
        return cache

    def refresh_user(self, store: IncidenceStore, user_id: int) -> None:
        """Rebuild both tables of one user from the store."""
        positives = np.array(sorted(store.items_of(user_id)), dtype=np.int64)
        mask = np.ones(self.num_items, dtype=bool)
        mask[positives] = False
        self.positives[user_id] = positives
        self.negatives[user_id] = np.flatnonzero(mask)

    def ensure_users(self, store: IncidenceStore) -> None:
        """Add tables for users registered since the cache was built."""
        for user_id in range(store.max_user_id + 1):
            if user_id not in self.positives:
                self.refresh_user(store, user_id)

    def drop_user(self, user_id: int) -> None:
        self.positives.pop(user_id, None)
        self.negatives.pop(user_id, None)

    def resize_items(self, num_items: int) -> None:
        """Follow a change of the item ID space.

        New item IDs have no edges yet, so they become negatives of every
        user; IDs beyond a shrunken space are dropped.
        """
        if num_items == self.num_items:
            return
        if num_items > self.num_items:
            added = np.arange(self.num_items, num_items, dtype=np.int64)
            for user_id, negatives in self.negatives.items():
                self.negatives[user_id] = np.concatenate([negatives, added])
        else:
            for user_id, negatives in self.negatives.items():
                self.negatives[user_id] = negatives[negatives < num_items]
        self.num_items = num_items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FastSamplingCache):
            return NotImplemented
        if self.num_items != other.num_items:
            return False
        if self.positives.keys() != other.positives.keys():
            return False
        return all(
            np.array_equal(self.positives[u], other.positives[u])
            and np.array_equal(self.negatives[u], other.negatives[u])
            for u in self.positives
        )


class SamplingStrategy:
    """Draws training triples from an ``IncidenceStore``.

    The strategy owns no random state of its own: the generator is injected so
    that a training session and its incremental updates share one seeded
    stream.

    Args:
        store: Feedback store to sample from.
        rng: Random generator.
        uniform_user: Draw anchor users uniformly (otherwise draw edges).
        with_replacement: Allow repeated positives within an epoch.
    """

    def __init__(
        self,
        store: IncidenceStore,
        rng: np.random.Generator,
        uniform_user: bool = True,
        with_replacement: bool = True,
    ):
        self.store = store
        self.rng = rng
        self.uniform_user = uniform_user
        self.with_replacement = with_replacement
        self.fast_cache: Optional[FastSamplingCache] = None

        self._valid_users: Optional[np.ndarray] = None
        self._edge_users: Optional[np.ndarray] = None
        self._edge_items: Optional[np.ndarray] = None
        self._all_edge_items: Optional[np.ndarray] = None
        self._edge_order: Optional[np.ndarray] = None
        self._edge_cursor = 0

    @property
    def policy_name(self) -> str:
        anchor = "uniform-user" if self.uniform_user else "uniform-pair"
        replacement = "with" if self.with_replacement else "without"
        return f"{anchor}/{replacement}-replacement"

    @property
    def fast_sampling(self) -> bool:
        return self.fast_cache is not None

    # ------------------------------------------------------------------
    # fast sampling tables
    # ------------------------------------------------------------------

    def configure_fast_sampling(self, memory_limit_mib: int) -> bool:
        """Precompute per-user tables if they fit in ``memory_limit_mib``.

        Exceeding the budget is not an error: sampling falls back to
        rejection against the store.

        Returns:
            True if fast sampling is active.
        """
        size_mib = fast_sampling_memory_mib(
            self.store.max_user_id + 1, self.store.max_item_id + 1
        )
        if size_mib <= memory_limit_mib:
            self.fast_cache = FastSamplingCache.build(self.store)
            logger.info(
                f"Fast sampling enabled ({size_mib} MiB <= {memory_limit_mib} MiB)"
            )
        else:
            self.fast_cache = None
            logger.info(
                f"Fast sampling disabled ({size_mib} MiB > {memory_limit_mib} MiB), "
                "using rejection sampling"
            )
        return self.fast_sampling

    def refresh_user(self, user_id: int) -> None:
        """Re-derive sampling state after a user's edges changed."""
        self.invalidate()
        if self.fast_cache is not None:
            self.fast_cache.resize_items(self.store.max_item_id + 1)
            self.fast_cache.refresh_user(self.store, user_id)
            self.fast_cache.ensure_users(self.store)

    def drop_user(self, user_id: int) -> None:
        self.invalidate()
        if self.fast_cache is not None:
            self.fast_cache.drop_user(user_id)

    def resize_items(self) -> None:
        self.invalidate()
        if self.fast_cache is not None:
            self.fast_cache.resize_items(self.store.max_item_id + 1)

    def invalidate(self) -> None:
        """Forget derived user/edge lists; they are rebuilt on next use."""
        self._valid_users = None
        self._edge_users = None
        self._edge_items = None
        self._all_edge_items = None
        self._edge_order = None
        self._edge_cursor = 0

    # ------------------------------------------------------------------
    # anchors
    # ------------------------------------------------------------------

    def is_valid_user(self, user_id: int) -> bool:
        """A user can anchor a triple if it has >= 1 and < all items."""
        num_items = self.store.num_items_of(user_id)
        return 0 < num_items < self.store.max_item_id + 1

    def valid_users(self) -> np.ndarray:
        if self._valid_users is None:
            self._valid_users = np.array(
                [u for u in self.store.non_empty_user_ids() if self.is_valid_user(u)],
                dtype=np.int64,
            )
        return self._valid_users

    def check_sampleable(self) -> None:
        """Raise ``SamplingExhaustedError`` if no user can anchor a triple."""
        if len(self.valid_users()) == 0:
            raise SamplingExhaustedError(
                self.store.max_user_id + 1, self.store.max_item_id + 1
            )

    def sample_user(self) -> int:
        """Draw a user uniformly among valid anchors."""
        users = self.valid_users()
        if len(users) == 0:
            raise SamplingExhaustedError(
                self.store.max_user_id + 1, self.store.max_item_id + 1
            )
        return int(users[self.rng.integers(len(users))])

    def _valid_edges(self) -> Tuple[np.ndarray, np.ndarray]:
        if self._edge_users is None:
            users, items = self.store.edge_arrays()
            valid = set(self.valid_users().tolist())
            keep = np.array([u in valid for u in users.tolist()], dtype=bool)
            self._edge_users = users[keep]
            self._edge_items = items[keep]
        return self._edge_users, self._edge_items

    # ------------------------------------------------------------------
    # item draws
    # ------------------------------------------------------------------

    def sample_positive(self, user_id: int) -> int:
        if self.fast_cache is not None:
            positives = self.fast_cache.positives[user_id]
            return int(positives[self.rng.integers(len(positives))])
        positives = sorted(self.store.items_of(user_id))
        return positives[self.rng.integers(len(positives))]

    def sample_negative(self, user_id: int) -> int:
        """Draw an item the user has not seen, uniformly over the item space.

        The user must be a valid anchor, which guarantees a negative exists.
        """
        if self.fast_cache is not None:
            negatives = self.fast_cache.negatives[user_id]
            return int(negatives[self.rng.integers(len(negatives))])
        num_items = self.store.max_item_id + 1
        while True:
            item_id = int(self.rng.integers(num_items))
            if not self.store.contains(user_id, item_id):
                return item_id

    def sample_popular_negative(self, user_id: int) -> int:
        """Draw a negative from the item column of the edge list.

        Falls back to a uniform negative when the user has seen every item
        that occurs in the edge list.
        """
        if self.store.num_items_of(user_id) >= self.store.num_active_items:
            return self.sample_negative(user_id)
        # every edge counts here, not only those of valid anchors
        if self._all_edge_items is None:
            self._all_edge_items = self.store.edge_arrays()[1]
        items = self._all_edge_items
        while True:
            item_id = int(items[self.rng.integers(len(items))])
            if not self.store.contains(user_id, item_id):
                return item_id

    def sample_item_pair(self, user_id: int) -> Tuple[int, int]:
        """Positive and negative item for a fixed user."""
        return self.sample_positive(user_id), self.sample_negative(user_id)

    def sample_other_item(self, user_id: int, item_id: int) -> Tuple[int, bool]:
        """Draw the opposite-polarity partner of ``item_id`` for ``user_id``.

        Returns:
            ``(other_item, item_is_positive)``: a negative if ``item_id`` is a
            positive of the user, otherwise a positive.
        """
        item_is_positive = self.store.contains(user_id, item_id)
        if item_is_positive:
            return self.sample_negative(user_id), True
        return self.sample_positive(user_id), False

    # ------------------------------------------------------------------
    # epochs
    # ------------------------------------------------------------------

    def begin_epoch(self) -> None:
        """Reset per-epoch state (derived lists, edge order)."""
        self.invalidate()
        self.check_sampleable()

    def _next_edge(self) -> Tuple[int, int]:
        users, items = self._valid_edges()
        if self.with_replacement:
            index = int(self.rng.integers(len(users)))
        else:
            if self._edge_order is None or self._edge_cursor >= len(self._edge_order):
                self._edge_order = self.rng.permutation(len(users))
                self._edge_cursor = 0
            index = int(self._edge_order[self._edge_cursor])
            self._edge_cursor += 1
        return int(users[index]), int(items[index])

    def next_triple(self) -> SampleTriple:
        """Draw one triple under the configured policy."""
        if self.uniform_user and self.with_replacement:
            user_id = self.sample_user()
            item_i = self.sample_positive(user_id)
            return SampleTriple(user_id, item_i, self.sample_negative(user_id))

        self.check_sampleable()
        user_id, item_i = self._next_edge()
        if self.uniform_user or self.with_replacement:
            item_j = self.sample_negative(user_id)
        else:
            item_j = self.sample_popular_negative(user_id)
        return SampleTriple(user_id, item_i, item_j)

    def epoch_triples(self, num_triples: int) -> Iterator[SampleTriple]:
        """Yield ``num_triples`` triples in sampling order."""
        for _ in range(num_triples):
            yield self.next_triple()

    def draw_triples(self, num_triples: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Draw a fixed batch of triples as three aligned arrays."""
        users = np.empty(num_triples, dtype=np.int64)
        pos_items = np.empty(num_triples, dtype=np.int64)
        neg_items = np.empty(num_triples, dtype=np.int64)
        for index, triple in enumerate(self.epoch_triples(num_triples)):
            users[index], pos_items[index], neg_items[index] = triple
        return users, pos_items, neg_items
