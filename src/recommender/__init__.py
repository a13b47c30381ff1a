"""Machine learning module for RankFactor.

This module contains the positive-feedback store, the training triple
samplers, the latent factor model with its pairwise update rule, the
training engine, incremental updates and the prediction interface.
"""
