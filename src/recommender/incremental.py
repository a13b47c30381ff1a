"""Online updates of a trained model.

``IncrementalUpdater`` adds and removes users, items and single feedback
edges, keeping the feedback store, the factor row arena and the sampling
caches aligned. After a feedback change only the touched user row and item
row are re-estimated, by re-initializing them and running a few anchored
gradient steps. Every other row is left as it is: this approximates a
re-fit, it does not replace one.
"""

import logging
from typing import Iterable

from src.recommender.exceptions import InvalidIdError, TrainingStateError
from src.recommender.train import TrainingEngine
from src.recommender.update_rules import apply_pairwise_update

# Configure module logger
logger = logging.getLogger(__name__)


def _check_non_negative(kind: str, entity_id: int) -> None:
    if entity_id < 0:
        raise InvalidIdError(kind, entity_id, "must be non-negative")


class IncrementalUpdater:
    """Applies incremental changes to a training session.

    Args:
        engine: A training engine whose model has been trained, initialized
            or loaded. The updater shares its store, sampler, generator and
            hyperparameters.
    """

    def __init__(self, engine: TrainingEngine):
        if engine.model is None:
            raise TrainingStateError("Incremental updates need an initialized model")
        self.engine = engine

    @property
    def store(self):
        return self.engine.store

    @property
    def model(self):
        return self.engine.model

    @property
    def sampler(self):
        return self.engine.sampler

    @property
    def rng(self):
        return self.engine.rng

    def _ensure_rows(self) -> None:
        # IDs registered in the store by loaders after training get rows too
        self.model.grow_users(self.store.max_user_id + 1, self.rng)
        self.model.grow_items(self.store.max_item_id + 1, self.rng)

    # ------------------------------------------------------------------
    # entities
    # ------------------------------------------------------------------

    def add_user(self, user_id: int) -> None:
        """Make room for a user and give it a freshly initialized row.

        An ID that already has a non-zero row keeps it.
        """
        _check_non_negative("user", user_id)
        is_new = user_id > self.store.max_user_id
        self.store.register_user(user_id)
        self._ensure_rows()

        if is_new or not self.model.user_factors[user_id].any():
            self.model.reset_user_row(user_id, self.rng)
        self.sampler.refresh_user(user_id)
        logger.info("User added", extra={"user_id": user_id, "new_id": is_new})

    def add_item(self, item_id: int) -> None:
        """Make room for an item: fresh factor row, bias 0."""
        _check_non_negative("item", item_id)
        is_new = item_id > self.store.max_item_id
        self.store.register_item(item_id)
        self._ensure_rows()

        if is_new or not self.model.item_factors[item_id].any():
            self.model.reset_item_row(item_id, self.rng)
            self.model.item_bias[item_id] = 0.0
        self.sampler.resize_items()
        logger.info("Item added", extra={"item_id": item_id, "new_id": is_new})

    def remove_user(self, user_id: int) -> None:
        """Drop a user's feedback and zero its row.

        The row slot is kept for ID alignment. ``max_user_id`` shrinks only
        when the removed user held it.
        """
        self._check_known("user", user_id, self.store.max_user_id)
        self._ensure_rows()

        removed = self.store.remove_user(user_id)
        self.model.zero_user_row(user_id)
        if user_id == self.store.max_user_id:
            self.store.max_user_id -= 1
            self.sampler.drop_user(user_id)
        else:
            self.sampler.refresh_user(user_id)

        logger.info(
            "User removed",
            extra={"user_id": user_id, "removed_edges": removed},
        )

    def remove_item(self, item_id: int) -> None:
        """Drop an item's feedback and zero its factor row."""
        self._check_known("item", item_id, self.store.max_item_id)
        self._ensure_rows()

        affected_users = sorted(self.store.users_of(item_id))
        removed = self.store.remove_item(item_id)
        self.model.zero_item_row(item_id)
        if item_id == self.store.max_item_id:
            self.store.max_item_id -= 1

        self.sampler.resize_items()
        for user_id in affected_users:
            self.sampler.refresh_user(user_id)

        logger.info(
            "Item removed",
            extra={"item_id": item_id, "removed_edges": removed},
        )

    # ------------------------------------------------------------------
    # feedback
    # ------------------------------------------------------------------

    def add_feedback(self, user_id: int, item_id: int) -> None:
        """Record one positive interaction and retrain the touched rows."""
        self._add_edge(user_id, item_id)
        self.sampler.refresh_user(user_id)
        self.retrain_user(user_id)
        self.retrain_item(item_id)

    def add_feedback_batch(self, user_id: int, item_ids: Iterable[int]) -> None:
        """Record several interactions of one user, retraining the user once."""
        item_ids = list(item_ids)
        for item_id in item_ids:
            self._add_edge(user_id, item_id)
        self.sampler.refresh_user(user_id)
        self.retrain_user(user_id)
        for item_id in item_ids:
            self.retrain_item(item_id)

    def remove_feedback(self, user_id: int, item_id: int) -> None:
        """Forget one interaction and retrain the touched rows.

        Raises:
            InvalidIdError: If either ID is outside the known ID space.
        """
        self._check_known("user", user_id, self.store.max_user_id)
        self._check_known("item", item_id, self.store.max_item_id)
        self._ensure_rows()

        if not self.store.remove(user_id, item_id):
            logger.warning(
                "Feedback to remove not found",
                extra={"user_id": user_id, "item_id": item_id},
            )
            return

        self.sampler.refresh_user(user_id)
        self.retrain_user(user_id)
        self.retrain_item(item_id)
        logger.info(
            "Feedback removed",
            extra={"user_id": user_id, "item_id": item_id},
        )

    def _add_edge(self, user_id: int, item_id: int) -> None:
        _check_non_negative("user", user_id)
        _check_non_negative("item", item_id)
        if user_id > self.store.max_user_id:
            self.add_user(user_id)
        if item_id > self.store.max_item_id:
            self.add_item(item_id)
        self._ensure_rows()

        self.store.add(user_id, item_id)
        logger.info(
            "Feedback added",
            extra={"user_id": user_id, "item_id": item_id},
        )

    @staticmethod
    def _check_known(kind: str, entity_id: int, max_id: int) -> None:
        _check_non_negative(kind, entity_id)
        if entity_id > max_id:
            raise InvalidIdError(kind, entity_id, f"is unknown (max {max_id})")

    # ------------------------------------------------------------------
    # partial retraining
    # ------------------------------------------------------------------

    def _step(self, u: int, i: int, j: int, update_u: bool, update_i: bool, update_j: bool):
        config = self.engine.config
        apply_pairwise_update(
            self.model, u, i, j,
            self.engine.learn_rate,
            config.reg_u, config.reg_i, config.reg_j, config.bias_reg,
            rule=config.gradient_rule,
            update_u=update_u, update_i=update_i, update_j=update_j,
        )

    def retrain_user(self, user_id: int) -> int:
        """Re-estimate one user row from the user's own feedback.

        The row is re-initialized, then one anchored update per positive
        item is applied with only the user row unfrozen.

        Re-initializing discards what the row had learned, so a user with few
        positives can end up scoring the newly added item lower than before.
        The new item usually gains, not always.

        Returns:
            Number of gradient steps applied.
        """
        self.model.reset_user_row(user_id, self.rng)
        if not self.sampler.is_valid_user(user_id):
            logger.debug(f"User {user_id} has no item pair to train on")
            return 0

        num_steps = self.store.num_items_of(user_id)
        for _ in range(num_steps):
            item_i, item_j = self.sampler.sample_item_pair(user_id)
            self._step(user_id, item_i, item_j, True, False, False)
        return num_steps

    def retrain_item(self, item_id: int) -> int:
        """Re-estimate one item row.

        The row is re-initialized, then ``size() // (max_item_id + 1)``
        updates are applied. Each draws an anchor user and the item's
        opposite-polarity partner for that user, and updates only this
        item's row on whichever side of the pair it sits.

        With few steps per item the fresh row stays close to its random
        initialization, so scores involving the item can move either way.

        Returns:
            Number of gradient steps applied.
        """
        self.model.reset_item_row(item_id, self.rng)
        if len(self.sampler.valid_users()) == 0:
            logger.warning(f"No user can anchor a triple; item {item_id} not retrained")
            return 0

        num_steps = self.store.size() // (self.store.max_item_id + 1)
        for _ in range(num_steps):
            user_id = self.sampler.sample_user()
            other_item, item_is_positive = self.sampler.sample_other_item(user_id, item_id)
            if item_is_positive:
                self._step(user_id, item_id, other_item, False, True, False)
            else:
                self._step(user_id, other_item, item_id, False, False, True)
        return num_steps
