"""Event plumbing shared by transports and the reconciliation scheduler."""
