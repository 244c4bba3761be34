"""Job completion approval and bi-weekly employee payout engine."""

__version__ = "0.1.0"
