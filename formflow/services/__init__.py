"""Service layer for FormFlow collaborators (email delivery)."""
