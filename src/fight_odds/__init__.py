"""Resilient MMA odds ingestion with movement and arbitrage detection."""

__version__ = "0.1.0"
