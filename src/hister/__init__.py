"""Search core for a personal web history index."""

__version__ = "0.1.0"
