"""Bill ingestion for the qianji personal finance app."""

__version__ = "0.1.0"
