"""Host bridge and idempotent send pipeline for embedded ledger apps."""

__version__ = "0.1.0"
