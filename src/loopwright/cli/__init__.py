"""Loopwright command-line interface."""
