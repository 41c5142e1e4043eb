"""Role checking utilities for FormFlow.

Provides the endpoint decorator and the tenant filters applied to list
queries.
"""

from functools import wraps
from typing import Callable, Optional, Union

from fastapi import HTTPException, status

from .roles import Role


def _role_of(user) -> Optional[Role]:
    try:
        return Role(user.role)
    except ValueError:
        return None


def has_role(user, *roles: Union[str, Role]) -> bool:
    """
    Check if a user holds one of the given roles.

    SUPER_ADMIN passes every check.
    """
    if not user or not user.role:
        return False

    role = _role_of(user)
    if role is None:
        return False
    if role == Role.SUPER_ADMIN:
        return True
    return role in {Role(r) for r in roles}


def require_role(*roles: Union[str, Role]):
    """
    Decorator factory for FastAPI endpoints restricted to some roles.

    Usage:
        @router.post("/plants")
        @require_role(Role.COMPANY_ADMIN)
        async def create_plant(current_user: User = Depends(get_current_user)):
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            # Find the current_user in kwargs (injected by FastAPI Depends)
            current_user = kwargs.get("current_user")
            if not current_user:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required"
                )

            if not has_role(current_user, *roles):
                allowed = ", ".join(Role(r).value for r in roles)
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient role. Required: {allowed}"
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator


def scope_to_tenant(query, model, user, *, owner_column: Optional[str] = None):
    """
    Restrict a query to the rows a user may see.

    Plant admins see their plant, company admins their company. Employees
    see rows they own through ``owner_column`` when given, otherwise their
    plant. Super admins are not filtered.
    """
    role = _role_of(user)
    if role == Role.SUPER_ADMIN:
        return query
    if role == Role.COMPANY_ADMIN:
        return query.filter(model.company_id == user.company_id)
    if role == Role.PLANT_ADMIN:
        return query.filter(model.plant_id == user.plant_id)
    if owner_column is not None:
        return query.filter(getattr(model, owner_column) == user.id)
    return query.filter(model.plant_id == user.plant_id)


def can_view(user, row, *, owner_column: Optional[str] = None) -> bool:
    """Single-row counterpart of ``scope_to_tenant``."""
    role = _role_of(user)
    if role == Role.SUPER_ADMIN:
        return True
    if role == Role.COMPANY_ADMIN:
        return row.company_id == user.company_id
    if role == Role.PLANT_ADMIN:
        return row.plant_id == user.plant_id
    if owner_column is not None:
        return getattr(row, owner_column) == user.id
    return row.plant_id == user.plant_id
