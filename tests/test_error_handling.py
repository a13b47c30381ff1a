"""Tests for error handling in the RankFactor API.

Tests various error scenarios including model not found, unknown IDs,
invalid input and the mapping of library errors to status codes.
"""

import json
import logging

import numpy as np
import pytest
from fastapi.testclient import TestClient

from src.api.exceptions import (
    InvalidRequest,
    RankFactorException,
    SamplingExhausted,
    UnknownIdError,
    from_recommender_error,
)
from src.api.logging_config import (
    JSONFormatter,
    RequestContextFilter,
    request_id_var,
    setup_logging,
)
from src.api.main import app
from src.api.session import MODEL_DIR_ENV_VAR, ModelSession, set_session
from src.recommender.exceptions import (
    ConfigurationError,
    InvalidIdError,
    SamplingExhaustedError,
    TrainingStateError,
)

# Create test client
client = TestClient(app)


@pytest.fixture
def loaded_session(trained_engine):
    set_session(ModelSession.from_engine(trained_engine))
    yield
    set_session(None)


def test_model_not_found_error(monkeypatch, tmp_path):
    """Test that missing model returns 503 Service Unavailable."""
    set_session(None)
    monkeypatch.setenv(MODEL_DIR_ENV_VAR, str(tmp_path / "non_existent_model_dir"))

    response = client.get("/recommend/1?top_n=5")

    assert response.status_code == 503
    data = response.json()
    assert data["error"] == "ModelNotFoundError"
    assert "Model not found" in data["message"]


def test_reload_missing_model_keeps_current_session(loaded_session, tmp_path):
    response = client.post(f"/model/reload?model_dir={tmp_path / 'missing'}")

    assert response.status_code == 503
    assert client.get("/status").json()["model_loaded"] is True


def test_unknown_user_returns_404(loaded_session):
    response = client.get("/recommend/999999?top_n=5")

    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "UnknownIdError"
    assert data["details"] == {"kind": "user", "id": 999999}


def test_remove_unknown_feedback_returns_404(loaded_session):
    response = client.request("DELETE", "/feedback", json={"user_id": 0, "item_id": 50})

    assert response.status_code == 404
    assert response.json()["details"]["kind"] == "item"


def test_negative_id_returns_422(loaded_session):
    response = client.get("/predict/-1/0")

    assert response.status_code == 422
    assert response.json()["error"] == "InvalidRequest"


def test_invalid_body_returns_422(loaded_session):
    assert client.post("/feedback", json={"user_id": -1, "item_id": 0}).status_code == 422
    assert client.post("/feedback", json={"user_id": 0}).status_code == 422


def test_invalid_user_id_type():
    """Test that non-integer user IDs are rejected by validation."""
    response = client.get("/recommend/abc")

    assert response.status_code == 422


def test_invalid_top_n(loaded_session):
    assert client.get("/recommend/0?top_n=0").status_code == 422


@pytest.mark.parametrize("error,expected_type,status_code", [
    (InvalidIdError("user", 5, "is unknown"), UnknownIdError, 404),
    (InvalidIdError("item", -2, "must be non-negative"), InvalidRequest, 422),
    (SamplingExhaustedError(3, 4), SamplingExhausted, 409),
    (ConfigurationError("bad option"), InvalidRequest, 422),
    (TrainingStateError("not trained"), RankFactorException, 500),
])
def test_error_mapping(error, expected_type, status_code):
    mapped = from_recommender_error(error)

    assert type(mapped) is expected_type
    assert mapped.status_code == status_code
    assert mapped.to_dict()["message"] == str(error)


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord(
        name="src.recommender.incremental",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Feedback added",
        args=(),
        exc_info=None,
    )
    record.user_id = 3
    record.item_id = 7

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Feedback added"
    assert data["level"] == "INFO"
    assert data["user_id"] == 3
    assert data["item_id"] == 7


def test_json_formatter_serializes_numpy_values():
    record = logging.LogRecord(
        name="src.recommender.train",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Epoch finished",
        args=(),
        exc_info=None,
    )
    record.loss = np.float64(0.25)
    record.epoch = np.int64(3)
    record.history = np.array([0.5, 0.25])

    data = json.loads(JSONFormatter().format(record))

    assert data["loss"] == 0.25
    assert data["epoch"] == 3
    assert data["history"] == [0.5, 0.25]


def test_request_context_filter_stamps_request_id():
    record = logging.LogRecord("src.recommender.incremental", logging.INFO, __file__, 1, "x", (), None)
    token = request_id_var.set("req-42")
    try:
        assert RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)

    assert record.request_id == "req-42"


def test_request_id_header_is_echoed():
    response = client.get("/ping", headers={"X-Request-ID": "trace-1"})

    assert response.headers["X-Request-ID"] == "trace-1"


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        setup_logging("LOUD")
