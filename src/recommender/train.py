"""Pairwise ranking matrix factorization training.

This module provides ``TrainingEngine``, which learns user and item latent
factors from positive-only feedback with stochastic gradient descent on a
pairwise ranking objective (BPR), and ``train_bpr_model``, the end-to-end
pipeline that loads a CSV of interactions, trains and saves the artifacts.
"""

import logging
import sys
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np
from sklearn.metrics import roc_auc_score

from src.recommender.config import TrainingConfig
from src.recommender.exceptions import TrainingStateError
from src.recommender.feedback import IncidenceStore
from src.recommender.infer import PredictionPort
from src.recommender.model import LatentFactorModel
from src.recommender.sampling import SamplingStrategy
from src.recommender.update_rules import GradientRule, apply_pairwise_update
from src.recommender.utils import load_csv_to_feedback, save_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)

# Bold driver step size factors
BOLD_DRIVER_DECREASE = 0.5
BOLD_DRIVER_INCREASE = 1.1

# Loss sample triples per sqrt(max_user_id)
LOSS_SAMPLE_TRIPLES_PER_ROOT_USER = 100

EpochCallback = Callable[["TrainingEngine", int, Optional[float]], None]


class TrainingState(Enum):
    """Lifecycle of a training session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    STOPPED = "stopped"


class TrainingEngine:
    """Runs SGD epochs of the pairwise ranking rule over sampled triples.

    The engine owns the random generator; the sampling strategy and any
    incremental updater built on top of the engine draw from the same seeded
    stream, so a fixed seed and configuration give a reproducible run.

    Example:
        >>> store = IncidenceStore.from_pairs([(0, 0), (0, 1), (1, 2)], num_items=4)
        >>> engine = TrainingEngine(store, TrainingConfig(num_iter=5, random_seed=1))
        >>> engine.train()
        >>> engine.state
        <TrainingState.CONVERGED: 'converged'>
    """

    def __init__(
        self,
        store: IncidenceStore,
        config: Optional[TrainingConfig] = None,
        rng: Optional[np.random.Generator] = None,
        sampler: Optional[SamplingStrategy] = None,
        on_epoch_end: Optional[EpochCallback] = None,
    ):
        self.store = store
        self.config = config or TrainingConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        self.sampler = sampler or SamplingStrategy(
            store,
            self.rng,
            uniform_user=self.config.uniform_user,
            with_replacement=self.config.with_replacement,
        )
        self.on_epoch_end = on_epoch_end

        self.model: Optional[LatentFactorModel] = None
        self.state = TrainingState.UNINITIALIZED
        self.learn_rate = self.config.learn_rate
        self.epochs_completed = 0
        self.last_loss = float("-inf")
        self.loss_history: List[float] = []
        self.learning_rate_history: List[float] = []

        self._loss_users: Optional[np.ndarray] = None
        self._loss_pos_items: Optional[np.ndarray] = None
        self._loss_neg_items: Optional[np.ndarray] = None

    @classmethod
    def from_model(
        cls,
        store: IncidenceStore,
        model: LatentFactorModel,
        config: Optional[TrainingConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> "TrainingEngine":
        """Wrap an existing (e.g. loaded) model so it can keep training.

        Model rows are grown to cover the store's ID space. Rows beyond it
        are kept as they are; they belong to removed IDs.
        """
        if config is None:
            config = TrainingConfig(
                num_factors=model.num_factors,
                init_mean=model.init_mean,
                init_stdev=model.init_stdev,
            )
        elif config.num_factors != model.num_factors:
            logger.warning(
                f"Set num_factors to {model.num_factors} to match the loaded model"
            )
            config = replace(config, num_factors=model.num_factors)

        engine = cls(store, config, rng=rng)
        model.grow_users(store.max_user_id + 1, engine.rng)
        model.grow_items(store.max_item_id + 1, engine.rng)
        engine.model = model
        engine.sampler.configure_fast_sampling(config.fast_sampling_memory_limit)
        engine.state = TrainingState.INITIALIZED
        return engine

    @property
    def rule(self) -> GradientRule:
        return self.config.gradient_rule

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> LatentFactorModel:
        """Allocate fresh factors and prepare sampling.

        Raises:
            SamplingExhaustedError: If no user can anchor a triple.
        """
        config = self.config
        self.sampler.invalidate()
        self.sampler.check_sampleable()

        self.model = LatentFactorModel.random(
            self.store.max_user_id + 1,
            self.store.max_item_id + 1,
            config.num_factors,
            self.rng,
            init_mean=config.init_mean,
            init_stdev=config.init_stdev,
        )
        self.learn_rate = config.learn_rate
        self.epochs_completed = 0
        self.loss_history = []
        self.learning_rate_history = []

        self.sampler.configure_fast_sampling(config.fast_sampling_memory_limit)

        if config.bold_driver:
            self.draw_loss_sample()
            self.last_loss = self.compute_loss()
            logger.info(f"Initial approximate loss: {self.last_loss:.6f}")

        self.state = TrainingState.INITIALIZED
        return self.model

    def train(self) -> LatentFactorModel:
        """Initialize the model and run ``num_iter`` epochs."""
        logger.info(
            f"Training {self.describe()}",
            extra={
                "num_users": self.store.max_user_id + 1,
                "num_items": self.store.max_item_id + 1,
                "num_edges": self.store.size(),
                "sampling": self.sampler.policy_name,
            },
        )
        self.initialize()

        for _ in range(self.config.num_iter):
            self.iterate()
            if self.state is TrainingState.STOPPED:
                logger.info(f"Training stopped after {self.epochs_completed} epochs")
                return self.model

        self.state = TrainingState.CONVERGED
        logger.info(f"Training completed after {self.epochs_completed} epochs")
        return self.model

    def stop(self) -> None:
        """Mark the session stopped; ``train()`` returns after the current epoch."""
        self.state = TrainingState.STOPPED

    def iterate(self) -> Optional[float]:
        """Run one epoch.

        One epoch applies ``size() * iteration_length`` sampled triples, in
        sampling order. With the bold driver enabled the learning rate is
        adapted afterwards.

        Returns:
            The approximate loss after the epoch if the bold driver is on,
            otherwise None.

        Raises:
            TrainingStateError: If the model has not been initialized.
            SamplingExhaustedError: If no user can anchor a triple.
        """
        if self.model is None:
            raise TrainingStateError("iterate() called before train() or initialize()")

        self.sampler.begin_epoch()
        if self.state is not TrainingState.STOPPED:
            self.state = TrainingState.ITERATING

        config = self.config
        model = self.model
        num_triples = self.store.size() * config.iteration_length
        for u, i, j in self.sampler.epoch_triples(num_triples):
            apply_pairwise_update(
                model, u, i, j,
                self.learn_rate,
                config.reg_u, config.reg_i, config.reg_j, config.bias_reg,
                rule=self.rule,
            )
        self.epochs_completed += 1

        loss = None
        if config.bold_driver:
            loss = self._adapt_learn_rate()

        logger.debug(
            "Epoch finished",
            extra={
                "epoch": self.epochs_completed,
                "num_triples": num_triples,
                "learn_rate": self.learn_rate,
                "loss": loss,
            },
        )

        if self.on_epoch_end is not None:
            self.on_epoch_end(self, self.epochs_completed, loss)
        return loss

    def _adapt_learn_rate(self) -> float:
        loss = self.compute_loss()
        if loss > self.last_loss:
            self.learn_rate *= BOLD_DRIVER_DECREASE
        elif loss < self.last_loss:
            self.learn_rate *= BOLD_DRIVER_INCREASE
        self.last_loss = loss

        self.loss_history.append(loss)
        self.learning_rate_history.append(self.learn_rate)
        logger.info(f"loss: {loss:.6f} learn_rate: {self.learn_rate:.6f}")
        return loss

    # ------------------------------------------------------------------
    # loss and fit
    # ------------------------------------------------------------------

    def loss_sample_size(self) -> int:
        if self.config.loss_sample_size is not None:
            return self.config.loss_sample_size
        root = int(np.sqrt(max(self.store.max_user_id, 1)))
        return root * LOSS_SAMPLE_TRIPLES_PER_ROOT_USER

    def draw_loss_sample(self) -> int:
        """Draw the fixed triples the approximate loss is computed on."""
        size = self.loss_sample_size()
        self.sampler.begin_epoch()
        self._loss_users, self._loss_pos_items, self._loss_neg_items = (
            self.sampler.draw_triples(size)
        )
        logger.info(f"loss_num_sample_triples={size}")
        return size

    def compute_loss(self) -> float:
        """Approximate loss over the fixed loss sample.

        Ranking loss plus an L2 penalty with the training regularization
        constants. Only meaningful relative to other epochs of the same run.
        """
        if self.model is None:
            raise TrainingStateError("compute_loss() called before the model exists")
        if self._loss_users is None:
            self.draw_loss_sample()

        config = self.config
        model = self.model
        users = self._loss_users
        pos_items = self._loss_pos_items
        neg_items = self._loss_neg_items

        w_u = model.user_factors[users]
        h_i = model.item_factors[pos_items]
        h_j = model.item_factors[neg_items]
        b_i = model.item_bias[pos_items]
        b_j = model.item_bias[neg_items]

        x = b_i - b_j + np.einsum("nf,nf->n", w_u, h_i - h_j)
        ranking_loss = self.rule.ranking_loss(x)

        complexity = (
            config.reg_u * np.sum(w_u ** 2)
            + config.reg_i * np.sum(h_i ** 2)
            + config.reg_j * np.sum(h_j ** 2)
            + config.bias_reg * (np.sum(b_i ** 2) + np.sum(b_j ** 2))
        )
        return float(ranking_loss + 0.5 * complexity)

    def compute_fit(self) -> float:
        """Mean per-user AUC of the model on its own training feedback.

        Users with no items or with every item are skipped.
        """
        if self.model is None:
            raise TrainingStateError("compute_fit() called before the model exists")

        num_items = self.store.max_item_id + 1
        aucs = []
        for user_id in self.sampler.valid_users().tolist():
            labels = np.zeros(num_items, dtype=np.int8)
            labels[sorted(self.store.items_of(user_id))] = 1
            scores = self.model.score_items(user_id)[:num_items]
            aucs.append(roc_auc_score(labels, scores))

        if not aucs:
            return 0.0
        return float(np.mean(aucs))

    # ------------------------------------------------------------------
    # accessors
    # ------------------------------------------------------------------

    def prediction_port(self) -> PredictionPort:
        """Read interface bound to the current model object."""
        if self.model is None:
            raise TrainingStateError("No model to predict with; call train() first")
        return PredictionPort(self.model, self.store)

    def describe(self) -> str:
        return (
            f"{type(self).__name__} {self.config.describe()} "
            f"current_learn_rate={self.learn_rate}"
        )


def train_bpr_model(
    csv_path: str,
    output_dir: str = "models",
    config: Optional[TrainingConfig] = None,
    user_col: str = "user_id",
    item_col: str = "item_id",
) -> Tuple[TrainingEngine, IncidenceStore]:
    """Train a pairwise ranking model from interaction data.

    This is the main entry point for training. It orchestrates the complete
    pipeline: loading data, building the feedback store, training the model,
    and saving artifacts.

    Args:
        csv_path: Path to CSV file with non-negative integer user and item IDs.
        output_dir: Directory where model artifacts will be saved.
        config: Training hyperparameters (defaults if None).
        user_col: Name of the user ID column.
        item_col: Name of the item ID column.

    Returns:
        A tuple containing:
            - The trained TrainingEngine (model at ``engine.model``)
            - The IncidenceStore built from the CSV

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If data is invalid.
        SamplingExhaustedError: If no user can anchor a training triple.
        OSError: If unable to save model artifacts.

    Example:
        >>> engine, store = train_bpr_model(
        ...     "data/interactions.csv",
        ...     output_dir="models",
        ...     config=TrainingConfig(num_factors=16, random_seed=42),
        ... )
        >>> engine.compute_fit()
    """
    config = config or TrainingConfig()

    logger.info("=" * 60)
    logger.info("Starting pairwise ranking model training")
    logger.info("=" * 60)

    try:
        # Step 1: Load CSV into the feedback store
        store = load_csv_to_feedback(csv_path, user_col=user_col, item_col=item_col)

        # Step 2: Train
        engine = TrainingEngine(store, config)
        engine.train()
        logger.info(f"Training fit (AUC): {engine.compute_fit():.4f}")

        # Step 3: Save model artifacts
        save_model_artifacts(engine.model, store, config, output_dir)

        logger.info("=" * 60)
        logger.info("Training completed successfully!")
        logger.info("=" * 60)

        return engine, store

    except Exception as e:
        logger.error(f"Training failed: {e}", exc_info=True)
        raise


def main() -> None:
    """Main entry point for command-line execution."""
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    csv_path = "data/interactions.csv"
    output_dir = "models"

    try:
        train_bpr_model(csv_path, output_dir, TrainingConfig(random_seed=42))
    except Exception as e:
        logger.error(f"Failed to train model: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
