"""Coin Radar - numismatic price catalog ingestion."""

__version__ = "0.1.0"
