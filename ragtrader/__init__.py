"""Retrieval-augmented crypto trading bot for the Roostoo exchange"""

__version__ = "0.1.0"
