"""Exception types raised by the recommender core.

Every error carries a human-readable message plus a ``details`` dictionary
that the API layer forwards to clients and the logs.
"""

from typing import Any, Dict, Optional


class RecommenderError(Exception):
    """Base exception for recommender core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidIdError(RecommenderError, ValueError):
    """Raised for negative user/item IDs or IDs the model does not know."""

    def __init__(self, kind: str, entity_id: int, reason: str = "is invalid"):
        message = f"{kind.capitalize()} ID {entity_id} {reason}"
        super().__init__(message, details={f"{kind}_id": entity_id})
        self.kind = kind
        self.entity_id = entity_id


class SamplingExhaustedError(RecommenderError, RuntimeError):
    """Raised when no user can anchor a training triple.

    A user can anchor a triple only if it has at least one positive item and
    at least one unobserved item. This condition does not change by retrying.
    """

    def __init__(self, num_users: int, num_items: int):
        message = (
            "No user has at least one and fewer than all items observed "
            f"({num_users} users, {num_items} items); cannot sample triples"
        )
        super().__init__(
            message,
            details={"num_users": num_users, "num_items": num_items},
        )


class DimensionMismatchError(RecommenderError, ValueError):
    """Raised when a saved model has inconsistent array shapes."""


class ModelFormatError(RecommenderError, ValueError):
    """Raised when a saved model dump cannot be parsed."""


class TrainingStateError(RecommenderError, RuntimeError):
    """Raised when a training operation is called in the wrong state."""


class ConfigurationError(RecommenderError, ValueError):
    """Raised for invalid or unknown configuration values."""
