"""Shared fixtures for the RankFactor test suite."""

from typing import List, Tuple

import pytest

from src.recommender.config import TrainingConfig
from src.recommender.feedback import IncidenceStore
from src.recommender.train import TrainingEngine

# 4 users, 5 items; user 3 has no feedback and item 4 is never seen
SCENARIO_EDGES: List[Tuple[int, int]] = [
    (0, 0), (0, 1),
    (1, 2),
    (2, 0), (2, 2), (2, 3),
]


def cluster_edges() -> List[Tuple[int, int]]:
    """Users 0-9 like items 0-4, users 10-19 like items 5-9."""
    edges = [(u, i) for u in range(10) for i in range(5)]
    edges += [(u, i) for u in range(10, 20) for i in range(5, 10)]
    return edges


@pytest.fixture
def scenario_store() -> IncidenceStore:
    return IncidenceStore.from_pairs(SCENARIO_EDGES, num_users=4, num_items=5)


@pytest.fixture
def cluster_store() -> IncidenceStore:
    return IncidenceStore.from_pairs(cluster_edges())


@pytest.fixture
def cluster_config() -> TrainingConfig:
    return TrainingConfig(num_factors=8, learn_rate=0.1, num_iter=60, random_seed=7)


@pytest.fixture
def trained_engine(cluster_store: IncidenceStore, cluster_config: TrainingConfig) -> TrainingEngine:
    """Engine trained on the two-cluster data set."""
    engine = TrainingEngine(cluster_store, cluster_config)
    engine.train()
    return engine
