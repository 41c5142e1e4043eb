"""FastAPI application for FormFlow."""
