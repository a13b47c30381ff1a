"""Latent factor model parameters.

The model is an arena of rows indexed by user or item ID: a user-factor
matrix, an item-factor matrix and an item-bias vector. Rows are appended when
new IDs appear and are zeroed, never deleted, when an entity is removed, so
row ``k`` always belongs to ID ``k`` in the feedback store.
"""

import logging
from typing import Optional

import numpy as np

from src.recommender.exceptions import DimensionMismatchError

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_INIT_MEAN = 0.0
DEFAULT_INIT_STDEV = 0.1


class LatentFactorModel:
    """User factors, item factors and item biases.

    ``score(u, i) = item_bias[i] + dot(user_factors[u], item_factors[i])``
    """

    def __init__(
        self,
        user_factors: np.ndarray,
        item_factors: np.ndarray,
        item_bias: Optional[np.ndarray] = None,
        init_mean: float = DEFAULT_INIT_MEAN,
        init_stdev: float = DEFAULT_INIT_STDEV,
    ):
        user_factors = np.asarray(user_factors, dtype=np.float64)
        item_factors = np.asarray(item_factors, dtype=np.float64)
        if item_bias is None:
            item_bias = np.zeros(item_factors.shape[0], dtype=np.float64)
        item_bias = np.asarray(item_bias, dtype=np.float64)

        if user_factors.ndim != 2 or item_factors.ndim != 2:
            raise DimensionMismatchError("Factor matrices must be two-dimensional")
        if user_factors.shape[1] != item_factors.shape[1]:
            raise DimensionMismatchError(
                "Number of user and item factors must match: "
                f"{user_factors.shape[1]} != {item_factors.shape[1]}",
                details={
                    "user_factor_columns": user_factors.shape[1],
                    "item_factor_columns": item_factors.shape[1],
                },
            )
        if item_bias.shape != (item_factors.shape[0],):
            raise DimensionMismatchError(
                "Number of items must be the same for biases and factors: "
                f"{item_bias.shape[0]} != {item_factors.shape[0]}",
                details={
                    "bias_length": int(item_bias.shape[0]),
                    "item_factor_rows": item_factors.shape[0],
                },
            )

        self.user_factors = user_factors
        self.item_factors = item_factors
        self.item_bias = item_bias
        self.init_mean = init_mean
        self.init_stdev = init_stdev

    @classmethod
    def random(
        cls,
        num_users: int,
        num_items: int,
        num_factors: int,
        rng: np.random.Generator,
        init_mean: float = DEFAULT_INIT_MEAN,
        init_stdev: float = DEFAULT_INIT_STDEV,
    ) -> "LatentFactorModel":
        """Create a model with normally distributed factors and zero biases."""
        user_factors = rng.normal(init_mean, init_stdev, size=(num_users, num_factors))
        item_factors = rng.normal(init_mean, init_stdev, size=(num_items, num_factors))
        logger.debug(
            f"Initialized factors: {num_users} users, {num_items} items, "
            f"{num_factors} factors"
        )
        return cls(
            user_factors,
            item_factors,
            np.zeros(num_items, dtype=np.float64),
            init_mean=init_mean,
            init_stdev=init_stdev,
        )

    @property
    def num_factors(self) -> int:
        return self.user_factors.shape[1]

    @property
    def num_user_rows(self) -> int:
        return self.user_factors.shape[0]

    @property
    def num_item_rows(self) -> int:
        return self.item_factors.shape[0]

    # ------------------------------------------------------------------
    # scoring
    # ------------------------------------------------------------------

    def score(self, user_id: int, item_id: int) -> float:
        """Score of one pair; the caller guarantees both rows exist."""
        return float(
            self.item_bias[item_id]
            + np.dot(self.user_factors[user_id], self.item_factors[item_id])
        )

    def score_items(self, user_id: int) -> np.ndarray:
        """Scores of every item row for one user."""
        return self.item_bias + self.item_factors @ self.user_factors[user_id]

    # ------------------------------------------------------------------
    # row arena
    # ------------------------------------------------------------------

    def _normal_rows(self, rng: np.random.Generator, count: int) -> np.ndarray:
        return rng.normal(self.init_mean, self.init_stdev, size=(count, self.num_factors))

    def grow_users(self, num_rows: int, rng: np.random.Generator) -> None:
        """Make sure there are at least ``num_rows`` user rows.

        New rows are drawn from the initialization distribution.
        """
        missing = num_rows - self.num_user_rows
        if missing <= 0:
            return
        self.user_factors = np.vstack([self.user_factors, self._normal_rows(rng, missing)])

    def grow_items(self, num_rows: int, rng: np.random.Generator) -> None:
        """Make sure there are at least ``num_rows`` item rows (bias 0)."""
        missing = num_rows - self.num_item_rows
        if missing <= 0:
            return
        self.item_factors = np.vstack([self.item_factors, self._normal_rows(rng, missing)])
        self.item_bias = np.concatenate([self.item_bias, np.zeros(missing)])

    def reset_user_row(self, user_id: int, rng: np.random.Generator) -> None:
        self.user_factors[user_id] = rng.normal(
            self.init_mean, self.init_stdev, size=self.num_factors
        )

    def reset_item_row(self, item_id: int, rng: np.random.Generator) -> None:
        self.item_factors[item_id] = rng.normal(
            self.init_mean, self.init_stdev, size=self.num_factors
        )

    def zero_user_row(self, user_id: int) -> None:
        self.user_factors[user_id] = 0.0

    def zero_item_row(self, item_id: int) -> None:
        # only the factor row; the bias entry is kept
        self.item_factors[item_id] = 0.0

    def copy(self) -> "LatentFactorModel":
        return LatentFactorModel(
            self.user_factors.copy(),
            self.item_factors.copy(),
            self.item_bias.copy(),
            init_mean=self.init_mean,
            init_stdev=self.init_stdev,
        )

    def __repr__(self) -> str:
        return (
            f"LatentFactorModel(users={self.num_user_rows}, "
            f"items={self.num_item_rows}, factors={self.num_factors})"
        )
