"""Role-based access control for FormFlow."""

from .roles import Role, ADMIN_ROLES
from .checker import has_role, require_role, scope_to_tenant, can_view

__all__ = [
    "Role",
    "ADMIN_ROLES",
    "has_role",
    "require_role",
    "scope_to_tenant",
    "can_view",
]
