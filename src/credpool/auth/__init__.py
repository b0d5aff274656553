"""Authentication helpers for upstream accounts."""
