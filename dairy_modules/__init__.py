"""Application modules built on the dairy ledger kernel."""
