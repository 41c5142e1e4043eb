"""Core domain logic for FormFlow."""
