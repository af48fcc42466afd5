"""Monthly ledger reconciliation for a thrift-and-loan society."""

__version__ = "0.1.0"
