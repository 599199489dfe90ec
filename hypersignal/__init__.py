"""HyperSignal: coordinated-wallet signal tracker for Hyperliquid."""

__version__ = "0.1.0"
