"""Sparq AI request layer - model routing with fallback and rate-limit enforcement."""

__version__ = "0.1.0"
