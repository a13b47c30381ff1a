"""Pairwise ranking gradient rules.

For a user ``u``, an observed item ``i`` and an unobserved item ``j`` the
model score difference is::

    x = (bias[i] - bias[j]) + dot(W[u], H[i] - H[j])

Both rules push ``x`` up. They differ only in the weight ``g`` applied to the
gradient: the logistic rule (BPR) uses ``1 / (1 + exp(x))``, the hinge rule
(soft margin ranking) uses ``1`` for misordered pairs and ``0`` otherwise.
"""

from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from scipy.special import expit

from src.recommender.exceptions import ConfigurationError

if TYPE_CHECKING:
    from src.recommender.model import LatentFactorModel


class GradientRule(str, Enum):
    """Weighting applied to the pairwise gradient."""

    LOGISTIC = "logistic"
    HINGE = "hinge"

    @classmethod
    def parse(cls, value: str) -> "GradientRule":
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown gradient rule {value!r}; expected one of "
                f"{[rule.value for rule in cls]}"
            ) from e

    def weight(self, x: float) -> float:
        """Gradient weight ``g`` for a score difference ``x``."""
        if self is GradientRule.HINGE:
            return 1.0 if x < 0 else 0.0
        # 1 / (1 + exp(x)) without overflow for large |x|
        return float(expit(-x))

    def ranking_loss(self, x: np.ndarray) -> float:
        """Ranking part of the approximate loss over an array of differences."""
        if self is GradientRule.HINGE:
            return float(np.count_nonzero(x < 0))
        return float(np.sum(expit(-x)))


def score_difference(model: "LatentFactorModel", u: int, i: int, j: int) -> float:
    """``x_uij``: how much higher item ``i`` scores than item ``j`` for user ``u``."""
    return float(
        model.item_bias[i]
        - model.item_bias[j]
        + np.dot(model.user_factors[u], model.item_factors[i] - model.item_factors[j])
    )


def apply_pairwise_update(
    model: "LatentFactorModel",
    u: int,
    i: int,
    j: int,
    learn_rate: float,
    reg_u: float,
    reg_i: float,
    reg_j: float,
    bias_reg: float,
    rule: GradientRule = GradientRule.LOGISTIC,
    update_u: bool = True,
    update_i: bool = True,
    update_j: bool = True,
) -> float:
    """Apply one SGD step for the triple ``(u, i, j)`` in place.

    All three factor updates are computed from the values the rows held
    before the step. Any of the three targets can be suppressed, which is how
    single rows are retrained after an incremental update.

    Returns:
        The score difference ``x`` the step was computed from.
    """
    x = score_difference(model, u, i, j)
    g = rule.weight(x)

    w_u = model.user_factors[u].copy()
    h_i = model.item_factors[i].copy()
    h_j = model.item_factors[j].copy()

    if update_i:
        model.item_bias[i] += learn_rate * (g - bias_reg * model.item_bias[i])
    if update_j:
        model.item_bias[j] += learn_rate * (-g - bias_reg * model.item_bias[j])

    if update_u:
        model.user_factors[u] = w_u + learn_rate * ((h_i - h_j) * g - reg_u * w_u)
    if update_i:
        model.item_factors[i] = h_i + learn_rate * (w_u * g - reg_i * h_i)
    if update_j:
        model.item_factors[j] = h_j + learn_rate * (-w_u * g - reg_j * h_j)

    return x
