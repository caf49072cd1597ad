"""Child resource discovery, update policies and reconciliation."""
