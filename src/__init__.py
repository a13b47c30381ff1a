"""RankFactor: pairwise ranking matrix factorization for implicit feedback.

This package learns user and item latent factors from positive-only
interactions with Bayesian Personalized Ranking, scores user-item pairs and
keeps a trained model current through incremental updates.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: Feedback storage, sampling, training and inference logic
"""

__version__ = "0.1.0"
