"""Ingestion and indexing pipeline for an archive of liked tweets."""

__version__ = "0.1.0"
