"""Generate fake implicit-feedback data for testing and development.

Users and items are split into taste groups; each user mostly interacts with
items of its own group, so a trained ranking model has structure to find.
IDs are zero-based integers, as the training loader expects.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_interactions
        df = generate_fake_interactions(num_users=100, num_items=200)
"""

from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

# Default configuration constants
DEFAULT_NUM_USERS = 50
DEFAULT_NUM_ITEMS = 100
DEFAULT_NUM_GROUPS = 5
DEFAULT_ITEMS_PER_USER = 8
DEFAULT_IN_GROUP_PROBABILITY = 0.9


def generate_fake_interactions(
    num_users: int = DEFAULT_NUM_USERS,
    num_items: int = DEFAULT_NUM_ITEMS,
    num_groups: int = DEFAULT_NUM_GROUPS,
    items_per_user: int = DEFAULT_ITEMS_PER_USER,
    in_group_probability: float = DEFAULT_IN_GROUP_PROBABILITY,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Generate synthetic positive-only interactions.

    User ``u`` belongs to group ``u % num_groups`` and item ``i`` to group
    ``i % num_groups``. Each interaction picks an item of the user's group
    with probability ``in_group_probability`` and any item otherwise.

    Returns:
        A pandas DataFrame with ``user_id`` and ``item_id`` columns, one row
        per distinct pair, sorted by user then item.

    Raises:
        ValueError: If a count is non-positive, there are more groups than
            items, or the probability is outside [0, 1].
    """
    # Validate inputs
    if num_users <= 0 or num_items <= 0 or num_groups <= 0 or items_per_user <= 0:
        raise ValueError(
            "num_users, num_items, num_groups and items_per_user must be positive"
        )
    if num_groups > num_items:
        raise ValueError("num_groups cannot exceed num_items")
    if not 0.0 <= in_group_probability <= 1.0:
        raise ValueError("in_group_probability must be within [0, 1]")

    rng = np.random.default_rng(seed)
    all_items = np.arange(num_items)

    rows = []
    for user_id in range(num_users):
        group_items = all_items[all_items % num_groups == user_id % num_groups]
        for _ in range(items_per_user):
            pool = group_items if rng.random() < in_group_probability else all_items
            rows.append((user_id, int(rng.choice(pool))))

    df = pd.DataFrame(rows, columns=["user_id", "item_id"])
    df = df.drop_duplicates().sort_values(["user_id", "item_id"]).reset_index(drop=True)

    return df


def main() -> None:
    """Main entry point for the data generation script.

    Generates fake interactions with default parameters and saves them to
    data/interactions.csv. Prints summary statistics upon completion.
    """
    print(f"Generating interactions for {DEFAULT_NUM_USERS} users, "
          f"{DEFAULT_NUM_ITEMS} items, {DEFAULT_NUM_GROUPS} groups...")

    try:
        df = generate_fake_interactions(seed=42)
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    # Ensure data directory exists
    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    output_path = data_dir / "interactions.csv"
    df.to_csv(output_path, index=False)

    # Print results summary
    print(f"\nData generated successfully!")
    print(f"Saved to: {output_path}")
    print(f"\nData preview:")
    print(df.head(10))
    print(f"\nData summary:")
    print(f"  Total interactions: {len(df)}")
    print(f"  Unique users: {df['user_id'].nunique()}")
    print(f"  Unique items: {df['item_id'].nunique()}")


if __name__ == "__main__":
    main()
