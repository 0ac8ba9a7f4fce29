"""Exam prep coaching backend: adaptive tests, recommendations and missions."""

__version__ = "0.1.0"
