"""bullion-rates: live silver base-rate ingestion and derived product rates."""

__version__ = "0.1.0"
