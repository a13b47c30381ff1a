"""FastAPI application main module.

This module defines the main FastAPI application instance and core API endpoints
for the RankFactor service. It provides health check, status and metrics
endpoints, maps library errors to JSON responses and serves as the entry
point for the API server.
"""

import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.exceptions import RankFactorException, from_recommender_error
from src.api.logging_config import RequestLoggingMiddleware, setup_logging
from src.api.metrics import metrics_service
from src.api.routes import feedback, predict
from src.api.session import current_session, reload_session
from src.recommender.exceptions import RecommenderError

# Configure module logger
logger = logging.getLogger(__name__)

setup_logging(os.environ.get("RANKFACTOR_LOG_LEVEL", "INFO"))

# Create FastAPI application instance
app = FastAPI(
    title="RankFactor API",
    description="Pairwise ranking matrix factorization for implicit feedback",
    version="0.1.0",
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(predict.router)
app.include_router(feedback.router)


@app.exception_handler(RankFactorException)
async def rankfactor_exception_handler(
    request: Request, exc: RankFactorException
) -> JSONResponse:
    logger.warning(
        f"Request failed: {exc.message}",
        extra={"path": str(request.url.path), "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RecommenderError)
async def recommender_exception_handler(
    request: Request, exc: RecommenderError
) -> JSONResponse:
    return await rankfactor_exception_handler(request, from_recommender_error(exc))


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.

    Returns:
        Dictionary with status key set to "ok".

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status")
def status() -> Dict[str, Any]:
    """Describe the loaded model, or report that none is loaded yet."""
    session = current_session()
    if session is None:
        return {"model_loaded": False, "timestamp_last_loaded": None}
    return session.status()


@app.get("/metrics")
def metrics() -> Dict[str, Any]:
    """Inference count and latency statistics."""
    return metrics_service.get_metrics()


@app.post("/model/reload")
def reload_model(model_dir: Optional[str] = None) -> Dict[str, Any]:
    """Reload the model from disk.

    Replaces the cached session, discarding incremental updates that were
    not saved. Useful when a new model has been trained and needs to be
    loaded without restarting the server.
    """
    logger.info("Reloading model...")
    session = reload_session(model_dir)
    return {"status": "Model reloaded successfully", **session.status()}


if __name__ == "__main__":
    import sys
    from pathlib import Path

    import uvicorn

    # Add project root to Python path for imports
    project_root = Path(__file__).parent.parent.parent
    sys.path.insert(0, str(project_root))

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
