"""Build size and runtime performance history engine."""

__version__ = "0.1.0"
