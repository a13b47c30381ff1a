"""CLI script for scoring and recommending with a saved model.

Useful for testing and evaluation. Prints top-N recommendations for one or
more users, or the score of explicit user-item pairs.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.recommender.exceptions import RecommenderError
from src.recommender.infer import (
    DEFAULT_MODEL_DIR,
    DEFAULT_TOP_N,
    PredictionPort,
    batch_recommend_for_users,
)
from src.recommender.utils import load_model_artifacts

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def print_recommendations(user_ids: List[int], model_dir: str, top_n: int) -> None:
    results = batch_recommend_for_users(user_ids, model_path=model_dir, top_n=top_n)
    for user_id in user_ids:
        items = results[user_id]
        if items:
            print(f"User {user_id}: top {len(items)} items: {items}")
        else:
            print(f"User {user_id}: unknown to the model or nothing left to recommend")


def print_scores(user_id: int, item_ids: List[int], model_dir: str) -> None:
    model, store, _ = load_model_artifacts(model_dir)
    port = PredictionPort(model, store)
    for item_id in item_ids:
        if port.can_predict(user_id, item_id):
            print(f"score({user_id}, {item_id}) = {port.score(user_id, item_id):.6f}")
        else:
            print(f"score({user_id}, {item_id}) = unknown")


def main(argv=None) -> int:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get item recommendations or pair scores from a saved model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/predict_cli.py 42
  python scripts/predict_cli.py 42 43 44 --top-n 5
  python scripts/predict_cli.py 42 --score 7 --score 9
        """
    )

    parser.add_argument(
        "user_ids",
        type=int,
        nargs="+",
        help="User IDs to get recommendations for"
    )

    parser.add_argument(
        "--top-n",
        type=int,
        default=DEFAULT_TOP_N,
        help=f"Number of recommendations to return (default: {DEFAULT_TOP_N})"
    )

    parser.add_argument(
        "--score",
        type=int,
        action="append",
        default=[],
        metavar="ITEM_ID",
        help="Print the score of this item for the first user instead; may be repeated"
    )

    parser.add_argument(
        "--model-dir",
        type=str,
        default=DEFAULT_MODEL_DIR,
        help=f"Directory containing model files (default: {DEFAULT_MODEL_DIR})"
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        if args.score:
            print_scores(args.user_ids[0], args.score, args.model_dir)
        else:
            print_recommendations(args.user_ids, args.model_dir, args.top_n)
    except FileNotFoundError as e:
        print(f"Error: Model not found in {args.model_dir}", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        return 1
    except RecommenderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
