"""Storage layer for a lightweight search backend: key-value index, word graphs, maintenance."""

__version__ = "0.1.0"