"""Clients for the external services notebooks are synced to."""
