"""desk-sim: order fill simulation and portfolio ledger engine."""

__version__ = "0.1.0"
