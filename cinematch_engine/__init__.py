"""Personalization and recommendation engine for the CineMatch media catalog."""

__version__ = "0.1.0"
