"""Database layer for FormFlow."""
