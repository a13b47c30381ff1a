"""Custom exceptions for the RankFactor API.

Defines specific exception types for better error handling and reporting.
"""

from typing import Any, Dict, Optional

from src.recommender.exceptions import (
    InvalidIdError,
    RecommenderError,
    SamplingExhaustedError,
)


class RankFactorException(Exception):
    """Base exception for RankFactor API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ModelNotFoundError(RankFactorException):
    """Raised when model files cannot be found."""

    def __init__(self, model_path: str, details: Optional[Dict[str, Any]] = None):
        message = f"Model not found at '{model_path}'. Please train a model first."
        super().__init__(
            message=message,
            status_code=503,
            details=details or {"model_path": model_path},
        )


class ModelLoadError(RankFactorException):
    """Raised when model fails to load."""

    def __init__(self, model_path: str, error: Exception):
        message = f"Failed to load model from '{model_path}': {str(error)}"
        super().__init__(
            message=message,
            status_code=500,
            details={
                "model_path": model_path,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class UnknownIdError(RankFactorException):
    """Raised when a user or item ID is outside the model's ID space."""

    def __init__(self, error: InvalidIdError):
        super().__init__(
            message=str(error),
            status_code=404,
            details={"kind": error.kind, "id": error.entity_id},
        )


class SamplingExhausted(RankFactorException):
    """Raised when no training triple can be drawn for an update."""

    def __init__(self, error: SamplingExhaustedError):
        super().__init__(message=str(error), status_code=409, details=error.details)


class InvalidRequest(RankFactorException):
    """Raised when a request is well-formed but cannot be applied."""

    def __init__(self, error: Exception):
        super().__init__(
            message=str(error),
            status_code=422,
            details={"error_type": type(error).__name__},
        )


def from_recommender_error(error: RecommenderError) -> RankFactorException:
    """Map a core library error to the API exception that reports it."""
    if isinstance(error, InvalidIdError):
        if error.entity_id < 0:
            return InvalidRequest(error)
        return UnknownIdError(error)
    if isinstance(error, SamplingExhaustedError):
        return SamplingExhausted(error)
    if isinstance(error, ValueError):
        return InvalidRequest(error)
    return RankFactorException(str(error), status_code=500, details=error.details)
