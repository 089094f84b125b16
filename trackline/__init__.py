"""Behavioral event ingestion and session aggregation pipeline."""

__version__ = "0.3.0"
