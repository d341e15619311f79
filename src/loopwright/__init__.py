"""Loopwright -- graph-based browser and API automation engine."""

__version__ = "0.4.0"
