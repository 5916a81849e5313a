"""Spark — a terminal front-end around a supervised signal-cli."""

__version__ = "0.1.0"
