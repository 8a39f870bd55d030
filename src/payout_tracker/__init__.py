"""Payout tracker: on-chain payout ingestion, deduplication and aggregation."""

__version__ = "0.1.0"
