"""Tests for the pairwise ranking training engine and pipeline.

This module contains unit tests for the training engine lifecycle, the
bold driver, the fit measure and the end-to-end pipeline from CSV to saved
artifacts.
"""

import tempfile
from pathlib import Path
from typing import Generator

import numpy as np
import pandas as pd
import pytest

from src.recommender.config import TrainingConfig
from src.recommender.exceptions import SamplingExhaustedError, TrainingStateError
from src.recommender.feedback import IncidenceStore
from src.recommender.train import (
    BOLD_DRIVER_DECREASE,
    BOLD_DRIVER_INCREASE,
    TrainingEngine,
    TrainingState,
    train_bpr_model,
)
from src.recommender.update_rules import GradientRule
from src.recommender.utils import (
    CONFIG_FILENAME,
    FEEDBACK_FILENAME,
    MODEL_FILENAME,
    check_model_exists,
    load_model_artifacts,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test artifacts.

    The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def interaction_csv(temp_dir: Path) -> Path:
    """Write two clusters of interactions to a CSV file."""
    edges = [(u, i) for u in range(10) for i in range(5)]
    edges += [(u, i) for u in range(10, 20) for i in range(5, 10)]
    df = pd.DataFrame(edges, columns=["user_id", "item_id"])
    csv_path = temp_dir / "interactions.csv"
    df.to_csv(csv_path, index=False)
    return csv_path


def preferred_item_store() -> IncidenceStore:
    """20 users, 5 items; user u observes only item u % 5."""
    return IncidenceStore.from_pairs([(u, u % 5) for u in range(20)])


def test_preferred_item_ranks_first() -> None:
    """After training, each user's single observed item scores highest."""
    hits = 0
    for seed in (1, 2, 3):
        store = preferred_item_store()
        engine = TrainingEngine(
            store,
            TrainingConfig(
                num_factors=5,
                learn_rate=0.1,
                num_iter=100,
                iteration_length=5,
                random_seed=seed,
            ),
        )
        engine.train()
        port = engine.prediction_port()
        for user_id in range(20):
            top_item, _ = port.recommend(user_id, top_n=1, exclude_seen=False)[0]
            hits += int(top_item == user_id % 5)

        assert engine.compute_fit() > 0.85

    assert hits >= 0.8 * 60


def test_uniform_pair_without_replacement_is_deterministic(cluster_store) -> None:
    config = TrainingConfig(
        num_factors=4,
        num_iter=5,
        uniform_user=False,
        with_replacement=False,
        random_seed=123,
    )

    first = TrainingEngine(cluster_store.copy(), config)
    second = TrainingEngine(cluster_store.copy(), config)
    first.train()
    second.train()

    np.testing.assert_array_equal(first.model.user_factors, second.model.user_factors)
    np.testing.assert_array_equal(first.model.item_factors, second.model.item_factors)
    np.testing.assert_array_equal(first.model.item_bias, second.model.item_bias)


@pytest.mark.parametrize("uniform_user,with_replacement", [
    (True, True), (True, False), (False, True), (False, False),
])
@pytest.mark.parametrize("rule", [GradientRule.LOGISTIC, GradientRule.HINGE])
def test_all_policies_fit_clusters(cluster_store, uniform_user, with_replacement, rule) -> None:
    engine = TrainingEngine(
        cluster_store,
        TrainingConfig(
            num_factors=4,
            learn_rate=0.1,
            num_iter=30,
            uniform_user=uniform_user,
            with_replacement=with_replacement,
            gradient_rule=rule,
            random_seed=5,
        ),
    )
    engine.train()

    assert engine.compute_fit() > 0.75


def test_state_machine(cluster_store) -> None:
    engine = TrainingEngine(cluster_store, TrainingConfig(num_iter=2, random_seed=0))

    assert engine.state is TrainingState.UNINITIALIZED
    with pytest.raises(TrainingStateError):
        engine.iterate()
    with pytest.raises(TrainingStateError):
        engine.prediction_port()

    engine.initialize()
    assert engine.state is TrainingState.INITIALIZED
    assert engine.model.user_factors.shape == (20, 10)

    engine.iterate()
    assert engine.state is TrainingState.ITERATING

    engine.train()
    assert engine.state is TrainingState.CONVERGED
    assert engine.epochs_completed == 2


def test_stop_from_epoch_callback(cluster_store) -> None:
    seen_epochs = []

    def on_epoch_end(engine, epoch, loss):
        seen_epochs.append(epoch)
        if epoch == 2:
            engine.stop()

    engine = TrainingEngine(
        cluster_store,
        TrainingConfig(num_iter=10, random_seed=0),
        on_epoch_end=on_epoch_end,
    )
    engine.train()

    assert engine.state is TrainingState.STOPPED
    assert engine.epochs_completed == 2
    assert seen_epochs == [1, 2]


def test_training_without_anchor_users_fails() -> None:
    store = IncidenceStore.from_pairs([(0, 0), (0, 1)], num_users=3, num_items=2)
    engine = TrainingEngine(store, TrainingConfig(random_seed=0))

    with pytest.raises(SamplingExhaustedError):
        engine.train()
    assert engine.model is None


def test_from_model_leaves_caller_config_unchanged(cluster_store) -> None:
    trained = TrainingEngine(cluster_store, TrainingConfig(num_factors=4, num_iter=1, random_seed=0))
    trained.train()
    config = TrainingConfig(num_factors=12, random_seed=0)

    engine = TrainingEngine.from_model(cluster_store, trained.model, config)

    assert engine.config.num_factors == 4
    assert config.num_factors == 12
    assert engine.state is TrainingState.INITIALIZED


def test_bold_driver_adapts_learning_rate(cluster_store) -> None:
    engine = TrainingEngine(
        cluster_store,
        TrainingConfig(bold_driver=True, learn_rate=0.1, random_seed=0),
    )
    engine.initialize()

    engine.last_loss = float("inf")
    engine._adapt_learn_rate()
    assert engine.learn_rate == pytest.approx(0.1 * BOLD_DRIVER_INCREASE)

    engine.last_loss = float("-inf")
    engine._adapt_learn_rate()
    assert engine.learn_rate == pytest.approx(0.1 * BOLD_DRIVER_INCREASE * BOLD_DRIVER_DECREASE)

    assert len(engine.loss_history) == 2
    assert engine.learning_rate_history == pytest.approx([0.11, 0.055])


def test_bold_driver_records_history_each_epoch(cluster_store) -> None:
    engine = TrainingEngine(
        cluster_store,
        TrainingConfig(bold_driver=True, num_iter=4, random_seed=0),
    )
    engine.train()

    assert len(engine.loss_history) == 4
    assert len(engine.learning_rate_history) == 4
    rates = [engine.config.learn_rate] + engine.learning_rate_history
    for previous, current in zip(rates, rates[1:]):
        assert current / previous in (
            pytest.approx(BOLD_DRIVER_DECREASE),
            pytest.approx(BOLD_DRIVER_INCREASE),
            1.0,
        )


def test_loss_sample_size(cluster_store) -> None:
    engine = TrainingEngine(cluster_store, TrainingConfig())
    # max_user_id = 19, int(sqrt(19)) = 4
    assert engine.loss_sample_size() == 400

    engine = TrainingEngine(cluster_store, TrainingConfig(loss_sample_size=25))
    assert engine.loss_sample_size() == 25


def test_compute_loss_uses_rule_and_regularization() -> None:
    store = IncidenceStore.from_pairs([(0, 0)], num_items=2)
    engine = TrainingEngine(
        store,
        TrainingConfig(
            num_factors=1,
            init_stdev=0.0,
            reg_u=0.0,
            reg_i=0.0,
            reg_j=0.0,
            loss_sample_size=10,
            random_seed=0,
        ),
    )
    engine.initialize()

    # all-zero factors: x = 0 for every triple, logistic loss 0.5 each
    assert engine.compute_loss() == pytest.approx(5.0)


def test_train_bpr_model_creates_artifacts(interaction_csv: Path, temp_dir: Path) -> None:
    """Test that train_bpr_model trains, saves and can be loaded back."""
    output_dir = temp_dir / "models"
    config = TrainingConfig(num_factors=4, num_iter=10, random_seed=42)

    engine, store = train_bpr_model(str(interaction_csv), str(output_dir), config)

    assert store.size() == 100
    assert engine.state is TrainingState.CONVERGED
    assert (output_dir / MODEL_FILENAME).exists()
    assert (output_dir / FEEDBACK_FILENAME).exists()
    assert (output_dir / CONFIG_FILENAME).exists()
    assert check_model_exists(str(output_dir))

    model, loaded_store, loaded_config = load_model_artifacts(str(output_dir))
    assert loaded_store == store
    assert loaded_config == config
    np.testing.assert_allclose(model.user_factors, engine.model.user_factors)
    np.testing.assert_allclose(model.item_factors, engine.model.item_factors)
    np.testing.assert_allclose(model.item_bias, engine.model.item_bias)


def test_train_bpr_model_invalid_csv_path(temp_dir: Path) -> None:
    with pytest.raises(FileNotFoundError):
        train_bpr_model(str(temp_dir / "nonexistent.csv"), str(temp_dir))


def test_train_bpr_model_empty_csv(temp_dir: Path) -> None:
    empty_csv = temp_dir / "empty.csv"
    empty_csv.write_text("user_id,item_id\n")

    with pytest.raises(ValueError, match="empty"):
        train_bpr_model(str(empty_csv), str(temp_dir))


def test_train_bpr_model_missing_columns(temp_dir: Path) -> None:
    bad_csv = temp_dir / "bad.csv"
    bad_csv.write_text("id,name\n1,test\n")

    with pytest.raises(ValueError, match="missing required columns"):
        train_bpr_model(str(bad_csv), str(temp_dir))


def test_train_bpr_model_negative_ids(temp_dir: Path) -> None:
    bad_csv = temp_dir / "negative.csv"
    bad_csv.write_text("user_id,item_id\n0,1\n-1,2\n")

    with pytest.raises(ValueError, match="negative"):
        train_bpr_model(str(bad_csv), str(temp_dir))
