"""Model session shared by the API routes.

The service keeps one loaded model in a module-level cache together with the
training engine and incremental updater built around it. Reads go through
the session's ``PredictionPort``; every mutation must hold ``session.lock``.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from src.api.exceptions import ModelLoadError, ModelNotFoundError
from src.recommender.incremental import IncrementalUpdater
from src.recommender.infer import DEFAULT_MODEL_DIR, PredictionPort
from src.recommender.train import TrainingEngine
from src.recommender.utils import check_model_exists, load_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)

# Model directory used when a request does not name one
MODEL_DIR_ENV_VAR = "RANKFACTOR_MODEL_DIR"

# Cache for the loaded model session
_session: Optional["ModelSession"] = None
_session_lock = threading.Lock()


@dataclass
class ModelSession:
    """A loaded model with everything needed to score and update it."""

    engine: TrainingEngine
    updater: IncrementalUpdater
    model_dir: str
    lock: threading.Lock = field(default_factory=threading.Lock)
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def port(self) -> PredictionPort:
        return self.engine.prediction_port()

    @classmethod
    def from_engine(cls, engine: TrainingEngine, model_dir: str = "<memory>") -> "ModelSession":
        return cls(engine=engine, updater=IncrementalUpdater(engine), model_dir=model_dir)

    def status(self) -> dict:
        store = self.engine.store
        return {
            "model_loaded": True,
            "model_dir": self.model_dir,
            "timestamp_last_loaded": self.loaded_at.isoformat(),
            "max_user_id": store.max_user_id,
            "max_item_id": store.max_item_id,
            "num_feedback": store.size(),
            "num_factors": self.engine.model.num_factors,
            "fast_sampling": self.engine.sampler.fast_sampling,
        }


def default_model_dir() -> str:
    return os.environ.get(MODEL_DIR_ENV_VAR, DEFAULT_MODEL_DIR)


def load_session(model_dir: str) -> ModelSession:
    """Load saved artifacts into a fresh session.

    Raises:
        ModelNotFoundError: If any artifact is missing.
        ModelLoadError: If the artifacts cannot be read.
    """
    if not check_model_exists(model_dir):
        logger.error(f"Model not found in {model_dir}")
        raise ModelNotFoundError(model_dir)

    try:
        logger.info(f"Loading model from {model_dir}")
        model, store, config = load_model_artifacts(model_dir)
        engine = TrainingEngine.from_model(store, model, config)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load model: {e}", exc_info=True)
        raise ModelLoadError(model_dir, e) from e

    logger.info("Model loaded successfully")
    return ModelSession.from_engine(engine, model_dir)


def get_session(model_dir: Optional[str] = None) -> ModelSession:
    """Return the cached session, loading it on first use."""
    global _session

    with _session_lock:
        if _session is None:
            _session = load_session(model_dir or default_model_dir())
        else:
            logger.debug("Using cached model")
        return _session


def reload_session(model_dir: Optional[str] = None) -> ModelSession:
    """Replace the cached session with one freshly loaded from disk.

    The old session stays active if loading fails.
    """
    global _session

    session = load_session(model_dir or default_model_dir())
    with _session_lock:
        _session = session
    return session


def set_session(session: Optional[ModelSession]) -> None:
    """Install a session directly, or clear the cache with None."""
    global _session

    with _session_lock:
        _session = session


def current_session() -> Optional[ModelSession]:
    return _session
