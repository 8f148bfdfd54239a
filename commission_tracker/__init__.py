"""Commission Tracker - sales commission engine and balance ledger."""

__version__ = "1.0.0"
