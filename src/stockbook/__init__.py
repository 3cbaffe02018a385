"""stockbook: tiered stock price and chart resolution."""

__version__ = "0.1.0"
