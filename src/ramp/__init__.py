"""Ramp - per-topic conversational intent tracking."""

__version__ = "0.1.0"
