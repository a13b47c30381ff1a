"""Utility functions for recommendation system.

This module provides helper functions for data loading, model persistence
and artifact management used throughout the recommendation system.

The model dump is plain text, in this fixed order:

1. user-factor matrix: a ``rows cols`` header, then one ``row col value``
   line per entry, then a blank line
2. item-bias vector: its length, then one value per line, then a blank line
3. item-factor matrix, in the same layout as the user factors
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, TextIO, Tuple

import joblib
import numpy as np
import pandas as pd

from src.recommender.config import TrainingConfig
from src.recommender.exceptions import ModelFormatError
from src.recommender.feedback import IncidenceStore
from src.recommender.model import LatentFactorModel

# Configure module logger
logger = logging.getLogger(__name__)

# Model artifact filenames
MODEL_FILENAME = "bpr_model.txt"
FEEDBACK_FILENAME = "feedback.joblib"
CONFIG_FILENAME = "training_config.joblib"


def load_csv_to_feedback(
    csv_path: str,
    user_col: str = "user_id",
    item_col: str = "item_id",
    num_users: Optional[int] = None,
    num_items: Optional[int] = None,
) -> IncidenceStore:
    """Load CSV interaction data into a feedback store.

    IDs are used as they are, so both columns must hold non-negative integers
    (an external mapping step turns raw identifiers into such IDs). Repeated
    interactions collapse into one edge.

    Args:
        csv_path: Path to CSV file containing interaction data.
        user_col: Name of the column containing user IDs.
        item_col: Name of the column containing item IDs.
        num_users: Optional size of the user ID space.
        num_items: Optional size of the item ID space.

    Returns:
        IncidenceStore holding one edge per distinct (user, item) pair.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns, is empty, or holds
            IDs that are not non-negative integers.

    Example:
        >>> store = load_csv_to_feedback("data/interactions.csv")
        >>> print(f"{store.size()} edges, max user {store.max_user_id}")
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading CSV from {csv_path}")
    df = pd.read_csv(csv_path)

    # Validate required columns
    required_columns = {user_col, item_col}
    if not required_columns.issubset(df.columns):
        missing = required_columns - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot build feedback from empty CSV")

    for column in (user_col, item_col):
        if not pd.api.types.is_integer_dtype(df[column]):
            raise ValueError(f"Column {column!r} must contain integer IDs")
        if (df[column] < 0).any():
            raise ValueError(f"Column {column!r} contains negative IDs")

    logger.info(f"Loaded {len(df)} interaction records")

    pairs = df[[user_col, item_col]].drop_duplicates()
    store = IncidenceStore.from_pairs(
        pairs.itertuples(index=False, name=None),
        num_users=num_users,
        num_items=num_items,
    )

    n_users = store.max_user_id + 1
    n_items = store.max_item_id + 1
    logger.info(f"User ID space: {n_users}, item ID space: {n_items}")
    logger.info(f"Feedback density: {store.size() / (n_users * n_items):.4%}")
    logger.info(f"Positive edges: {store.size()}")

    return store


# ----------------------------------------------------------------------
# text model dump
# ----------------------------------------------------------------------


def write_matrix(writer: TextIO, matrix: np.ndarray) -> None:
    """Write a dense matrix as a header plus ``row col value`` lines."""
    rows, cols = matrix.shape
    writer.write(f"{rows} {cols}\n")
    for i in range(rows):
        for j in range(cols):
            writer.write(f"{i} {j} {float(matrix[i, j])!r}\n")
    writer.write("\n")


def write_vector(writer: TextIO, vector: np.ndarray) -> None:
    """Write a vector as its length plus one value per line."""
    writer.write(f"{len(vector)}\n")
    for value in vector:
        writer.write(f"{float(value)!r}\n")
    writer.write("\n")


def _content_lines(reader: TextIO) -> Iterator[str]:
    for line in reader:
        line = line.strip()
        if line:
            yield line


def _next_line(lines: Iterator[str], what: str) -> str:
    try:
        return next(lines)
    except StopIteration:
        raise ModelFormatError(f"Unexpected end of model file while reading {what}")


def read_matrix(lines: Iterator[str]) -> np.ndarray:
    """Read a matrix written by ``write_matrix`` from an iterator of lines."""
    header = _next_line(lines, "matrix header").split()
    try:
        rows, cols = int(header[0]), int(header[1])
    except (IndexError, ValueError) as e:
        raise ModelFormatError(f"Invalid matrix header: {' '.join(header)}") from e

    matrix = np.zeros((rows, cols), dtype=np.float64)
    for _ in range(rows * cols):
        line = _next_line(lines, "matrix entries")
        fields = line.split()
        if len(fields) != 3:
            raise ModelFormatError(f"Expected three fields: {line}")
        try:
            i, j, value = int(fields[0]), int(fields[1]), float(fields[2])
        except ValueError as e:
            raise ModelFormatError(f"Invalid matrix entry: {line}") from e
        if not (0 <= i < rows):
            raise ModelFormatError(f"i = {i} >= {rows}")
        if not (0 <= j < cols):
            raise ModelFormatError(f"j = {j} >= {cols}")
        matrix[i, j] = value
    return matrix


def read_vector(lines: Iterator[str]) -> np.ndarray:
    """Read a vector written by ``write_vector`` from an iterator of lines."""
    line = _next_line(lines, "vector length")
    try:
        length = int(line)
        return np.array(
            [float(_next_line(lines, "vector values")) for _ in range(length)],
            dtype=np.float64,
        )
    except ValueError as e:
        raise ModelFormatError(f"Invalid vector data: {e}") from e


def save_model(model: LatentFactorModel, writer: TextIO) -> None:
    """Write user factors, item biases and item factors, in that order."""
    write_matrix(writer, model.user_factors)
    write_vector(writer, model.item_bias)
    write_matrix(writer, model.item_factors)


def load_model(reader: TextIO) -> LatentFactorModel:
    """Read a model written by ``save_model``.

    Raises:
        ModelFormatError: If the text cannot be parsed.
        DimensionMismatchError: If user and item factor columns differ, or
            the bias length differs from the number of item rows.
    """
    lines = _content_lines(reader)
    user_factors = read_matrix(lines)
    item_bias = read_vector(lines)
    item_factors = read_matrix(lines)
    return LatentFactorModel(user_factors, item_factors, item_bias)


# ----------------------------------------------------------------------
# artifact directories
# ----------------------------------------------------------------------


def save_model_artifacts(
    model: LatentFactorModel,
    store: IncidenceStore,
    config: TrainingConfig,
    output_dir: str,
    model_filename: str = MODEL_FILENAME,
    feedback_filename: str = FEEDBACK_FILENAME,
    config_filename: str = CONFIG_FILENAME,
) -> None:
    """Save the model dump, feedback store and configuration to disk.

    Creates the directory if it doesn't exist.

    Args:
        model: Trained model to save.
        store: Feedback store the model was trained on.
        config: Training configuration.
        output_dir: Directory path where artifacts will be saved.
        model_filename: Filename for the text model dump.
        feedback_filename: Filename for the pickled feedback store.
        config_filename: Filename for the pickled configuration.

    Raises:
        OSError: If unable to create output directory or save files.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving model artifacts to {output_dir}")

    model_path = output_path / model_filename
    with open(model_path, "w", encoding="utf-8") as writer:
        save_model(model, writer)
    logger.info(f"Saved model to {model_path}")

    feedback_path = output_path / feedback_filename
    joblib.dump(store, feedback_path)
    logger.info(f"Saved feedback ({store.size()} edges) to {feedback_path}")

    config_path = output_path / config_filename
    joblib.dump(config.to_dict(), config_path)
    logger.info(f"Saved configuration to {config_path}")


def load_model_artifacts(
    model_dir: str,
    model_filename: str = MODEL_FILENAME,
    feedback_filename: str = FEEDBACK_FILENAME,
    config_filename: str = CONFIG_FILENAME,
) -> Tuple[LatentFactorModel, IncidenceStore, TrainingConfig]:
    """Load model, feedback store and configuration from disk.

    Returns:
        A tuple containing:
            - Loaded LatentFactorModel
            - IncidenceStore the model was trained on
            - TrainingConfig the model was trained with

    Raises:
        FileNotFoundError: If any required artifact file is missing.
        ModelFormatError: If the model dump cannot be parsed.
        DimensionMismatchError: If the model dump is inconsistent.
    """
    model_path = Path(model_dir)

    if not model_path.exists():
        raise FileNotFoundError(f"Model directory does not exist: {model_dir}")

    logger.info(f"Loading model artifacts from {model_dir}")

    model_file = model_path / model_filename
    if not model_file.exists():
        raise FileNotFoundError(f"Model file not found: {model_file}")
    with open(model_file, "r", encoding="utf-8") as reader:
        model = load_model(reader)
    logger.info(f"Loaded model from {model_file}: {model}")

    feedback_file = model_path / feedback_filename
    if not feedback_file.exists():
        raise FileNotFoundError(f"Feedback file not found: {feedback_file}")
    store = joblib.load(feedback_file)
    logger.info(f"Loaded feedback from {feedback_file}: {store}")

    config_file = model_path / config_filename
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")
    config = TrainingConfig(**joblib.load(config_file))

    model.init_mean = config.init_mean
    model.init_stdev = config.init_stdev

    return model, store, config


def get_model_paths(
    model_dir: str,
    model_filename: str = MODEL_FILENAME,
    feedback_filename: str = FEEDBACK_FILENAME,
    config_filename: str = CONFIG_FILENAME,
) -> Tuple[Path, Path, Path]:
    """Get file paths for model artifacts without loading them.

    Returns:
        A tuple containing Path objects for the model dump, the feedback
        store and the configuration.
    """
    model_path = Path(model_dir)
    return (
        model_path / model_filename,
        model_path / feedback_filename,
        model_path / config_filename,
    )


def check_model_exists(model_dir: str) -> bool:
    """Check if all required model artifacts exist."""
    return all(path.exists() for path in get_model_paths(model_dir))
