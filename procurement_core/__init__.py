"""Access-consistency repair, cached collection loading and budget ledger core."""

__version__ = "0.1.0"
