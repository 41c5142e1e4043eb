"""Shared API schemas."""

from .common import PaginatedResponse, ErrorResponse, MessageResponse

__all__ = ["PaginatedResponse", "ErrorResponse", "MessageResponse"]
