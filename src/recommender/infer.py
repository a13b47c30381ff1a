"""Module for scoring and recommending items.

``PredictionPort`` is the single read interface over a trained model: the
score of a user-item pair. Evaluation code, the API and downstream consumers
all go through it.
"""

import logging
import sys
import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from src.recommender.exceptions import InvalidIdError
from src.recommender.feedback import IncidenceStore
from src.recommender.model import LatentFactorModel
from src.recommender.utils import load_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)

# Score returned for pairs outside the allocated factor rows
UNKNOWN_SCORE = -sys.float_info.max

# Default parameters
DEFAULT_TOP_N = 5
DEFAULT_MODEL_DIR = "models"


class PredictionPort:
    """Scores user-item pairs with a latent factor model.

    The port is bound to a model object; rows grown by incremental updates
    are visible immediately, a model replaced by a new ``train()`` is not.

    Args:
        model: Trained latent factor model.
        store: Feedback store that defines the known ID space and the items
            each user has already seen.
    """

    def __init__(self, model: LatentFactorModel, store: IncidenceStore):
        self.model = model
        self.store = store

    @property
    def max_user_id(self) -> int:
        return self.store.max_user_id

    @property
    def max_item_id(self) -> int:
        return self.store.max_item_id

    def can_predict(self, user_id: int, item_id: int) -> bool:
        """True if both IDs are inside the known ID space."""
        return 0 <= user_id <= self.max_user_id and 0 <= item_id <= self.max_item_id

    def score(self, user_id: int, item_id: int) -> float:
        """Score of a user-item pair.

        Returns ``UNKNOWN_SCORE`` for IDs beyond the allocated factor rows
        instead of raising; use ``can_predict`` to tell the cases apart.

        Raises:
            InvalidIdError: If either ID is negative.
        """
        if user_id < 0:
            raise InvalidIdError("user", user_id, "must be non-negative")
        if item_id < 0:
            raise InvalidIdError("item", item_id, "must be non-negative")
        if user_id >= self.model.num_user_rows or item_id >= self.model.num_item_rows:
            return UNKNOWN_SCORE
        return self.model.score(user_id, item_id)

    def score_items(
        self,
        user_id: int,
        item_ids: Optional[Sequence[int]] = None,
    ) -> np.ndarray:
        """Scores of several items for one user.

        Args:
            user_id: User to score for.
            item_ids: Items to score; all known items if None.

        Raises:
            InvalidIdError: If the user is negative or has no factor row.
        """
        if user_id < 0 or user_id >= self.model.num_user_rows:
            raise InvalidIdError("user", user_id, "has no factor row")

        num_items = min(self.max_item_id + 1, self.model.num_item_rows)
        all_scores = self.model.score_items(user_id)[:num_items]
        if item_ids is None:
            return all_scores

        scores = np.full(len(item_ids), UNKNOWN_SCORE)
        for index, item_id in enumerate(item_ids):
            if item_id < 0:
                raise InvalidIdError("item", item_id, "must be non-negative")
            if item_id < num_items:
                scores[index] = all_scores[item_id]
        return scores

    def recommend(
        self,
        user_id: int,
        top_n: int = DEFAULT_TOP_N,
        exclude_seen: bool = True,
    ) -> List[Tuple[int, float]]:
        """Top-N items for a user, best first.

        Args:
            user_id: User to recommend for.
            top_n: Number of items to return.
            exclude_seen: Skip items the user already interacted with.

        Returns:
            List of (item_id, score) tuples.
        """
        start_time = time.time()

        scores = self.score_items(user_id).copy()
        if exclude_seen:
            seen = sorted(self.store.items_of(user_id))
            seen = [item_id for item_id in seen if item_id < len(scores)]
            scores[seen] = -np.inf

        valid_indices = np.flatnonzero(scores != -np.inf)
        if len(valid_indices) == 0:
            logger.warning(f"No items left to recommend for user {user_id}")
            return []

        n_available = min(top_n, len(valid_indices))
        order = np.argsort(-scores[valid_indices], kind="stable")
        top_indices = valid_indices[order[:n_available]]
        recommendations = [(int(item_id), float(scores[item_id])) for item_id in top_indices]

        logger.debug(
            "Computed recommendations",
            extra={
                "user_id": user_id,
                "num_recommendations": len(recommendations),
                "compute_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return recommendations


def recommend_items_for_user(
    user_id: int,
    model_path: str = DEFAULT_MODEL_DIR,
    top_n: int = DEFAULT_TOP_N,
) -> List[int]:
    """Load saved artifacts and return top-N item IDs for a user.

    Raises:
        FileNotFoundError: If the model artifacts are missing.
        InvalidIdError: If the user is unknown to the model.
    """
    start_time = time.time()
    model, store, _ = load_model_artifacts(model_path)
    port = PredictionPort(model, store)

    if not port.can_predict(user_id, 0):
        logger.warning(
            "User not in model",
            extra={"user_id": user_id, "max_user_id": port.max_user_id},
        )
        raise InvalidIdError("user", user_id, "is not known to the model")

    recommendations = [item_id for item_id, _ in port.recommend(user_id, top_n)]

    logger.info(
        "Recommendations generated",
        extra={
            "user_id": user_id,
            "num_recommendations": len(recommendations),
            "total_time_ms": round((time.time() - start_time) * 1000, 2),
        },
    )
    return recommendations


def batch_recommend_for_users(
    user_ids: List[int],
    model_path: str = DEFAULT_MODEL_DIR,
    top_n: int = DEFAULT_TOP_N,
) -> Dict[int, List[int]]:
    """Generate recommendations for multiple users in batch.

    Loads the model once and reuses it for all users. Users the model cannot
    score get an empty list.

    Args:
        user_ids: List of user IDs for which to generate recommendations.
        model_path: Path to directory containing model artifacts.
        top_n: Number of recommendations per user.

    Returns:
        Dictionary mapping user IDs to their recommended item ID lists.

    Raises:
        FileNotFoundError: If model files are not found at model_path.
    """
    logger.info(
        f"Generating batch recommendations for {len(user_ids)} users, "
        f"top_n={top_n}"
    )

    model, store, _ = load_model_artifacts(model_path)
    port = PredictionPort(model, store)

    results = {}
    for user_id in user_ids:
        if not port.can_predict(user_id, 0):
            logger.warning(f"User {user_id} not found in model")
            results[user_id] = []
            continue
        results[user_id] = [item_id for item_id, _ in port.recommend(user_id, top_n)]

    logger.info(f"Batch recommendations completed for {len(results)} users")
    return results
