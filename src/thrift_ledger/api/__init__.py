"""HTTP API for the thrift ledger."""
