"""FormFlow: multi-tenant form workflow backend with multi-level approvals."""

__version__ = "0.3.0"
