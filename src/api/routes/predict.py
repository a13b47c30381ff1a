"""Scoring and recommendation endpoints for the RankFactor API.

This module exposes the model's prediction port over HTTP: the score of a
single user-item pair and the top-N unseen items of a user.
Reads hold the session lock, so they never observe a row that an update is
still retraining.
"""

import logging
import time
from typing import List

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from src.api.metrics import metrics_service
from src.api.session import get_session
from src.recommender.exceptions import InvalidIdError
from src.recommender.infer import DEFAULT_TOP_N

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(tags=["predictions"])


class PredictionResponse(BaseModel):
    """Response model for a single score.

    Attributes:
        user_id: The scored user.
        item_id: The scored item.
        score: Model score; the lowest float when ``can_predict`` is false.
        can_predict: Whether both IDs are inside the model's ID space.
    """

    user_id: int
    item_id: int
    score: float
    can_predict: bool


class ScoredItem(BaseModel):
    item_id: int
    score: float


class RecommendationResponse(BaseModel):
    """Response model for recommendation requests."""

    user_id: int = Field(..., description="User ID for recommendations")
    recommendations: List[ScoredItem] = Field(
        ..., description="Unseen items, best first"
    )


@router.get("/predict/{user_id}/{item_id}", response_model=PredictionResponse)
def predict(user_id: int, item_id: int) -> PredictionResponse:
    """Score one user-item pair.

    Example:
        GET /predict/3/17
    """
    start_time = time.time()
    session = get_session()
    with session.lock:
        score = session.port.score(user_id, item_id)
        can_predict = session.port.can_predict(user_id, item_id)

    latency_ms = (time.time() - start_time) * 1000
    metrics_service.record_inference(latency_ms)
    logger.info(
        "Prediction served",
        extra={
            "user_id": user_id,
            "item_id": item_id,
            "can_predict": can_predict,
            "latency_ms": round(latency_ms, 2),
        },
    )
    return PredictionResponse(
        user_id=user_id, item_id=item_id, score=score, can_predict=can_predict
    )


@router.get("/recommend/{user_id}", response_model=RecommendationResponse)
def recommend(
    user_id: int,
    top_n: int = Query(DEFAULT_TOP_N, ge=1, le=1000),
) -> RecommendationResponse:
    """Get the top-N items a user has not interacted with yet.

    Example:
        GET /recommend/42?top_n=5
    """
    start_time = time.time()
    session = get_session()

    if user_id < 0:
        raise InvalidIdError("user", user_id, "must be non-negative")
    with session.lock:
        port = session.port
        if user_id > port.max_user_id:
            logger.warning(f"User {user_id} not found in model")
            raise InvalidIdError("user", user_id, f"is unknown (max {port.max_user_id})")

        recommendations = [
            ScoredItem(item_id=item_id, score=score)
            for item_id, score in port.recommend(user_id, top_n)
        ]

    latency_ms = (time.time() - start_time) * 1000
    metrics_service.record_inference(latency_ms)
    logger.info(
        f"Generated {len(recommendations)} recommendations for user {user_id}",
        extra={"user_id": user_id, "latency_ms": round(latency_ms, 2)},
    )
    return RecommendationResponse(user_id=user_id, recommendations=recommendations)
