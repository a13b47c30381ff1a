"""Tests for the pairwise gradient rules and the latent factor model."""

import numpy as np
import pytest

from src.recommender.exceptions import ConfigurationError, DimensionMismatchError
from src.recommender.model import LatentFactorModel
from src.recommender.update_rules import (
    GradientRule,
    apply_pairwise_update,
    score_difference,
)


@pytest.fixture
def small_model() -> LatentFactorModel:
    """One user, two items; item 0 scores above item 1 for the user."""
    return LatentFactorModel(
        user_factors=np.array([[1.0, 0.5]]),
        item_factors=np.array([[0.8, 0.2], [-0.4, 0.1]]),
        item_bias=np.array([0.1, -0.1]),
    )


def update(model, u, i, j, rule, **kwargs):
    return apply_pairwise_update(
        model, u, i, j,
        learn_rate=0.1, reg_u=0.0, reg_i=0.0, reg_j=0.0, bias_reg=0.0,
        rule=rule, **kwargs,
    )


def test_score_difference(small_model):
    # 0.1 - (-0.1) + [1, 0.5] . [1.2, 0.1]
    assert score_difference(small_model, 0, 0, 1) == pytest.approx(1.45)


def test_hinge_ignores_correctly_ordered_pairs(small_model):
    before = small_model.copy()

    x = update(small_model, 0, 0, 1, GradientRule.HINGE)

    assert x > 0
    np.testing.assert_array_equal(small_model.user_factors, before.user_factors)
    np.testing.assert_array_equal(small_model.item_factors, before.item_factors)
    np.testing.assert_array_equal(small_model.item_bias, before.item_bias)


def test_hinge_corrects_misordered_pairs(small_model):
    w_u = small_model.user_factors[0].copy()
    h_0 = small_model.item_factors[0].copy()
    h_1 = small_model.item_factors[1].copy()

    # item 1 as the positive: misordered, so the weight is 1
    x = update(small_model, 0, 1, 0, GradientRule.HINGE)

    assert x < 0
    np.testing.assert_allclose(small_model.user_factors[0], w_u + 0.1 * (h_1 - h_0))
    np.testing.assert_allclose(small_model.item_factors[1], h_1 + 0.1 * w_u)
    np.testing.assert_allclose(small_model.item_factors[0], h_0 - 0.1 * w_u)
    assert small_model.item_bias.tolist() == pytest.approx([0.0, 0.0])


def test_logistic_step_increases_score_difference(small_model):
    x_before = update(small_model, 0, 1, 0, GradientRule.LOGISTIC)
    x_after = score_difference(small_model, 0, 1, 0)

    assert x_after > x_before


def test_frozen_rows_are_not_updated(small_model):
    before = small_model.copy()

    update(small_model, 0, 1, 0, GradientRule.LOGISTIC, update_i=False, update_j=False)

    assert not np.array_equal(small_model.user_factors, before.user_factors)
    np.testing.assert_array_equal(small_model.item_factors, before.item_factors)
    np.testing.assert_array_equal(small_model.item_bias, before.item_bias)


def test_regularization_shrinks_rows():
    model = LatentFactorModel(
        user_factors=np.array([[10.0]]),
        item_factors=np.array([[10.0], [-10.0]]),
    )

    # x is huge, so the logistic weight is ~0 and only the penalty acts
    apply_pairwise_update(
        model, 0, 0, 1, learn_rate=0.1,
        reg_u=0.5, reg_i=0.5, reg_j=0.5, bias_reg=0.0,
    )

    assert model.user_factors[0, 0] == pytest.approx(9.5)
    assert model.item_factors[0, 0] == pytest.approx(9.5)
    assert model.item_factors[1, 0] == pytest.approx(-9.5)


def test_gradient_rule_weights():
    assert GradientRule.LOGISTIC.weight(0.0) == pytest.approx(0.5)
    assert GradientRule.LOGISTIC.weight(1000.0) == pytest.approx(0.0)
    assert GradientRule.HINGE.weight(-0.1) == 1.0
    assert GradientRule.HINGE.weight(0.0) == 0.0

    x = np.array([-1.0, 0.5, 2.0])
    assert GradientRule.HINGE.ranking_loss(x) == 1.0
    assert GradientRule.LOGISTIC.ranking_loss(np.zeros(4)) == pytest.approx(2.0)


def test_gradient_rule_parse():
    assert GradientRule.parse(" Hinge ") is GradientRule.HINGE
    assert GradientRule.parse("logistic") is GradientRule.LOGISTIC
    with pytest.raises(ConfigurationError):
        GradientRule.parse("softmax")


def test_model_rejects_mismatched_shapes():
    with pytest.raises(DimensionMismatchError, match="factors must match"):
        LatentFactorModel(np.zeros((2, 3)), np.zeros((4, 2)))
    with pytest.raises(DimensionMismatchError, match="biases and factors"):
        LatentFactorModel(np.zeros((2, 3)), np.zeros((4, 3)), np.zeros(3))


def test_row_arena_growth_and_zeroing():
    rng = np.random.default_rng(3)
    model = LatentFactorModel.random(2, 3, 4, rng)
    model.item_bias[:] = 0.7

    model.grow_users(5, rng)
    model.grow_items(4, rng)
    model.grow_users(1, rng)

    assert model.num_user_rows == 5
    assert model.num_item_rows == 4
    assert model.item_bias.tolist() == [0.7, 0.7, 0.7, 0.0]
    assert model.user_factors[4].any()

    model.zero_item_row(1)
    model.zero_user_row(0)

    assert not model.item_factors[1].any()
    assert model.item_bias[1] == 0.7
    assert model.score(0, 2) == pytest.approx(0.7)
    np.testing.assert_allclose(
        model.score_items(3),
        [model.score(3, i) for i in range(4)],
    )
