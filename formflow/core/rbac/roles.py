"""Role model for FormFlow access control.

Four fixed roles, ordered from widest to narrowest reach:
  - SUPER_ADMIN: every company
  - COMPANY_ADMIN: one company and all of its plants
  - PLANT_ADMIN: one plant
  - EMPLOYEE: own submissions and assigned approvals
"""

from enum import Enum
from typing import FrozenSet


class Role(str, Enum):
    """User roles."""

    SUPER_ADMIN = "SUPER_ADMIN"
    COMPANY_ADMIN = "COMPANY_ADMIN"
    PLANT_ADMIN = "PLANT_ADMIN"
    EMPLOYEE = "EMPLOYEE"


ADMIN_ROLES: FrozenSet[Role] = frozenset({
    Role.SUPER_ADMIN,
    Role.COMPANY_ADMIN,
    Role.PLANT_ADMIN,
})
