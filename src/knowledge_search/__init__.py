"""Hybrid retrieval pipeline for a personal knowledge base."""

__version__ = "0.1.0"
