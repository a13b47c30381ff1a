"""Incremental update endpoints for the RankFactor API.

Each request applies one change through the session's ``IncrementalUpdater``
while holding the session lock, so concurrent updates are serialized.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.api.metrics import metrics_service
from src.api.session import get_session

# Create API router
router = APIRouter(tags=["updates"])


class FeedbackRequest(BaseModel):
    """A single positive interaction."""

    user_id: int = Field(..., ge=0, description="User ID")
    item_id: int = Field(..., ge=0, description="Item ID")


class UpdateResponse(BaseModel):
    """Outcome of an update, with the ID space after it."""

    status: str
    max_user_id: int
    max_item_id: int
    num_feedback: int


def _response(session, status: str) -> UpdateResponse:
    metrics_service.record_update(status.replace(" ", "_"))
    store = session.engine.store
    return UpdateResponse(
        status=status,
        max_user_id=store.max_user_id,
        max_item_id=store.max_item_id,
        num_feedback=store.size(),
    )


@router.post("/feedback", response_model=UpdateResponse)
def add_feedback(request: FeedbackRequest) -> UpdateResponse:
    """Record an interaction and retrain the touched user and item rows."""
    session = get_session()
    with session.lock:
        session.updater.add_feedback(request.user_id, request.item_id)
        return _response(session, "feedback added")


@router.delete("/feedback", response_model=UpdateResponse)
def remove_feedback(request: FeedbackRequest) -> UpdateResponse:
    """Forget an interaction and retrain the touched user and item rows."""
    session = get_session()
    with session.lock:
        session.updater.remove_feedback(request.user_id, request.item_id)
        return _response(session, "feedback removed")


@router.post("/users/{user_id}", response_model=UpdateResponse)
def add_user(user_id: int) -> UpdateResponse:
    session = get_session()
    with session.lock:
        session.updater.add_user(user_id)
        return _response(session, "user added")


@router.delete("/users/{user_id}", response_model=UpdateResponse)
def remove_user(user_id: int) -> UpdateResponse:
    session = get_session()
    with session.lock:
        session.updater.remove_user(user_id)
        return _response(session, "user removed")


@router.post("/items/{item_id}", response_model=UpdateResponse)
def add_item(item_id: int) -> UpdateResponse:
    session = get_session()
    with session.lock:
        session.updater.add_item(item_id)
        return _response(session, "item added")


@router.delete("/items/{item_id}", response_model=UpdateResponse)
def remove_item(item_id: int) -> UpdateResponse:
    session = get_session()
    with session.lock:
        session.updater.remove_item(item_id)
        return _response(session, "item removed")
