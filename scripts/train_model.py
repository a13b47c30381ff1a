"""Command-line interface for training the pairwise ranking model.

This script provides a CLI for training a RankFactor model from positive
user-item interactions stored in CSV format.

Example:
    Train a model with default settings:
        $ python scripts/train_model.py data/interactions.csv

    Train with custom parameters:
        $ python scripts/train_model.py data/interactions.csv \\
            --output-dir models/production \\
            --num-factors 32 \\
            --num-iter 50 \\
            --option bold_driver=true --option gradient_rule=hinge
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.api.logging_config import setup_logging
from src.recommender.config import TrainingConfig
from src.recommender.exceptions import RecommenderError
from src.recommender.train import train_bpr_model

DEFAULTS = TrainingConfig()


def parse_options(options: List[str]) -> Dict[str, str]:
    """Split ``key=value`` strings into a mapping.

    Raises:
        ValueError: If an option has no ``=``.
    """
    parsed = {}
    for option in options:
        key, sep, value = option.partition("=")
        if not sep:
            raise ValueError(f"Option must look like key=value: {option!r}")
        parsed[key.strip()] = value.strip()
    return parsed


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Train a pairwise ranking (BPR) model from CSV interaction data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train with default settings
  python scripts/train_model.py data/interactions.csv

  # Train with custom output directory and factors
  python scripts/train_model.py data/interactions.csv --output-dir models/prod --num-factors 32

  # Any TrainingConfig field can be set with --option
  python scripts/train_model.py data/interactions.csv --option uniform_user=false --option reg_j=0.001
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        help="Path to CSV file containing interaction data with integer "
        "user and item ID columns",
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default="models",
        help="Directory where model artifacts will be saved (default: models)",
    )

    parser.add_argument(
        "--user-col",
        type=str,
        default="user_id",
        help="Name of the user ID column (default: user_id)",
    )

    parser.add_argument(
        "--item-col",
        type=str,
        default="item_id",
        help="Name of the item ID column (default: item_id)",
    )

    parser.add_argument(
        "--num-factors",
        type=int,
        default=DEFAULTS.num_factors,
        help=f"Number of latent factors (default: {DEFAULTS.num_factors})",
    )

    parser.add_argument(
        "--num-iter",
        type=int,
        default=DEFAULTS.num_iter,
        help=f"Number of training epochs (default: {DEFAULTS.num_iter})",
    )

    parser.add_argument(
        "--learn-rate",
        type=float,
        default=DEFAULTS.learn_rate,
        help=f"SGD learning rate (default: {DEFAULTS.learn_rate})",
    )

    parser.add_argument(
        "--random-seed",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)",
    )

    parser.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set any other TrainingConfig field; may be repeated",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> TrainingConfig:
    """Combine the dedicated flags and ``--option`` pairs into one config.

    ``--option`` values win over the dedicated flags.
    """
    values: Dict[str, object] = {
        "num_factors": args.num_factors,
        "num_iter": args.num_iter,
        "learn_rate": args.learn_rate,
        "random_seed": args.random_seed,
    }
    values.update(parse_options(args.option))
    return TrainingConfig.from_mapping(values)


def validate_csv_path(csv_path: str) -> None:
    """Validate that the CSV file exists and is readable.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If path is not a file.
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {csv_path}")


def main(argv=None) -> int:
    """Main entry point for the training script.

    Returns:
        Exit code: 0 on success, 1 on error, 130 when interrupted.
    """
    try:
        args = parse_arguments(argv)

        setup_logging("DEBUG" if args.verbose else "INFO", json_format=False)
        logger = logging.getLogger(__name__)

        logger.info(f"Validating CSV path: {args.csv_path}")
        validate_csv_path(args.csv_path)
        config = build_config(args)

        # Display configuration
        logger.info("=" * 70)
        logger.info("Training Configuration")
        logger.info("=" * 70)
        logger.info(f"CSV path:         {args.csv_path}")
        logger.info(f"Output directory: {args.output_dir}")
        for key, value in config.to_dict().items():
            logger.info(f"{key + ':':<28}{value}")
        logger.info("=" * 70)

        engine, store = train_bpr_model(
            csv_path=args.csv_path,
            output_dir=args.output_dir,
            config=config,
            user_col=args.user_col,
            item_col=args.item_col,
        )

        # Display results
        logger.info("=" * 70)
        logger.info("Training Summary")
        logger.info("=" * 70)
        logger.info(f"Latent factors:   {engine.model.num_factors}")
        logger.info(f"User ID space:    {store.max_user_id + 1}")
        logger.info(f"Item ID space:    {store.max_item_id + 1}")
        logger.info(f"Feedback edges:   {store.size()}")
        logger.info(f"Epochs:           {engine.epochs_completed}")
        logger.info(f"Final learn rate: {engine.learn_rate:.6g}")
        logger.info(f"Model saved to: {Path(args.output_dir).absolute()}")
        logger.info("=" * 70)

        logger.info("Training completed successfully!")
        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except (ValueError, RecommenderError) as e:
        logging.error(f"Validation error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Training interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
