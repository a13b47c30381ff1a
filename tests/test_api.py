"""Tests for the FastAPI application endpoints.

This module contains integration tests for the RankFactor API endpoints,
including health checks, scoring, recommendations and incremental updates.
"""

import threading
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from src.api import session as session_module
from src.api.main import app
from src.api.metrics import metrics_service
from src.api.session import ModelSession, set_session
from src.recommender.train import TrainingEngine
from src.recommender.utils import save_model_artifacts

# Create test client
client = TestClient(app)


@pytest.fixture
def loaded_session(trained_engine: TrainingEngine) -> Generator[ModelSession, None, None]:
    """Install a session around the two-cluster model for one test."""
    session = ModelSession.from_engine(trained_engine)
    set_session(session)
    metrics_service.reset()
    yield session
    set_session(None)


def test_ping_endpoint():
    """Test that the /ping endpoint returns correct status and JSON."""
    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert "X-Request-ID" in response.headers


def test_status_without_model():
    set_session(None)

    response = client.get("/status")

    assert response.status_code == 200
    assert response.json() == {"model_loaded": False, "timestamp_last_loaded": None}


def test_status_endpoint(loaded_session):
    """Test that the /status endpoint describes the loaded model."""
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["model_loaded"] is True
    assert data["max_user_id"] == 19
    assert data["max_item_id"] == 9
    assert data["num_feedback"] == 100
    assert data["num_factors"] == 8
    assert isinstance(data["timestamp_last_loaded"], str)


def test_predict_endpoint(loaded_session):
    response = client.get("/predict/0/2")

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == 0
    assert data["item_id"] == 2
    assert data["can_predict"] is True
    assert data["score"] == pytest.approx(loaded_session.port.score(0, 2))


def test_predict_unknown_pair(loaded_session):
    response = client.get("/predict/50/2")

    assert response.status_code == 200
    assert response.json()["can_predict"] is False


def test_recommend_endpoint(loaded_session):
    """Test that /recommend/{user_id} returns unseen items, best first."""
    response = client.get("/recommend/0?top_n=3")

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == 0
    items = data["recommendations"]
    assert len(items) == 3
    assert all(entry["item_id"] >= 5 for entry in items)
    scores = [entry["score"] for entry in items]
    assert scores == sorted(scores, reverse=True)


def test_metrics_count_inference_calls(loaded_session):
    client.get("/predict/0/1")
    client.get("/recommend/1")

    data = client.get("/metrics").json()

    assert data["inference_count"] == 2
    assert data["max_latency_ms"] >= data["min_latency_ms"] >= 0.0


def test_add_and_remove_feedback(loaded_session):
    response = client.post("/feedback", json={"user_id": 0, "item_id": 7})

    assert response.status_code == 200
    assert response.json()["num_feedback"] == 101
    assert loaded_session.engine.store.contains(0, 7)

    response = client.request("DELETE", "/feedback", json={"user_id": 0, "item_id": 7})

    assert response.status_code == 200
    assert response.json()["num_feedback"] == 100
    assert metrics_service.get_metrics()["updates"] == {
        "feedback_added": 1,
        "feedback_removed": 1,
    }


def test_feedback_for_new_ids_grows_id_space(loaded_session):
    response = client.post("/feedback", json={"user_id": 30, "item_id": 12})

    assert response.status_code == 200
    data = response.json()
    assert data["max_user_id"] == 30
    assert data["max_item_id"] == 12
    assert client.get("/predict/30/12").json()["can_predict"] is True


def test_user_and_item_endpoints(loaded_session):
    assert client.post("/users/21").json()["max_user_id"] == 21
    assert client.post("/items/10").json()["max_item_id"] == 10

    response = client.delete("/users/21")
    assert response.status_code == 200
    assert response.json()["max_user_id"] == 20

    response = client.delete("/items/0")
    assert response.status_code == 200
    assert response.json()["num_feedback"] == 90


def test_reload_model_from_disk(loaded_session, tmp_path):
    engine = loaded_session.engine
    save_model_artifacts(engine.model, engine.store, engine.config, str(tmp_path))

    response = client.post(f"/model/reload?model_dir={tmp_path}")

    assert response.status_code == 200
    assert response.json()["model_dir"] == str(tmp_path)
    assert session_module.current_session() is not loaded_session
    assert client.get("/predict/0/2").json()["score"] == pytest.approx(
        loaded_session.port.score(0, 2)
    )


def test_reads_wait_for_running_update(loaded_session):
    """A prediction blocks while an update holds the session lock."""
    responses = []
    reader = threading.Thread(target=lambda: responses.append(client.get("/predict/0/2")))

    with loaded_session.lock:
        reader.start()
        reader.join(timeout=0.3)
        assert reader.is_alive()
        assert responses == []

    reader.join(timeout=10)
    assert responses[0].status_code == 200
