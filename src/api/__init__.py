"""FastAPI application module for RankFactor.

This module contains the FastAPI application, route handlers, and API
endpoints for the ranking service. It provides RESTful interfaces for
scoring user-item pairs, recommending items and applying incremental
feedback updates to the loaded model.
"""
