"""Tests for JWT handling and role checks."""

import asyncio
from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from jose import jwt

from formflow.core.config import get_settings
from formflow.core.rbac import ADMIN_ROLES, Role, can_view, has_role, require_role
from formflow.core.security import create_access_token, decode_token


settings = get_settings()


def _user(role, company_id=None, plant_id=None):
    return SimpleNamespace(id=uuid4(), role=role.value, company_id=company_id, plant_id=plant_id)


def test_access_token_round_trip():
    """A freshly issued token decodes to its user."""
    user_id = uuid4()
    token = create_access_token(user_id, role="EMPLOYEE")

    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    assert payload["sub"] == str(user_id)
    assert payload["type"] == "access"
    assert payload["role"] == "EMPLOYEE"
    assert decode_token(token) == user_id


def test_expired_token_is_rejected():
    token = create_access_token(uuid4(), expires_delta=timedelta(seconds=-10))
    assert decode_token(token) is None


def test_garbage_token_is_rejected():
    assert decode_token("not-a-jwt") is None


def test_wrong_token_type_is_rejected():
    token = jwt.encode(
        {"sub": str(uuid4()), "type": "refresh"}, settings.secret_key, algorithm=settings.algorithm,
    )
    assert decode_token(token) is None


class TestRoles:
    """Test role checks and tenant visibility."""

    def test_super_admin_passes_everything(self):
        assert has_role(_user(Role.SUPER_ADMIN), Role.PLANT_ADMIN)

    def test_role_membership(self):
        admin = _user(Role.PLANT_ADMIN)
        assert has_role(admin, *ADMIN_ROLES)
        assert not has_role(admin, Role.COMPANY_ADMIN)
        assert not has_role(_user(Role.EMPLOYEE), *ADMIN_ROLES)

    def test_unknown_role(self):
        assert not has_role(SimpleNamespace(role="JANITOR"), Role.EMPLOYEE)
        assert not has_role(None, Role.EMPLOYEE)

    def test_can_view_by_scope(self):
        company, plant, other = uuid4(), uuid4(), uuid4()
        row = SimpleNamespace(company_id=company, plant_id=plant, submitted_by=None)

        assert can_view(_user(Role.COMPANY_ADMIN, company_id=company), row)
        assert not can_view(_user(Role.COMPANY_ADMIN, company_id=other), row)
        assert can_view(_user(Role.PLANT_ADMIN, plant_id=plant), row)
        assert not can_view(_user(Role.PLANT_ADMIN, plant_id=other), row)

    def test_employee_sees_own_rows(self):
        employee = _user(Role.EMPLOYEE, plant_id=uuid4())
        mine = SimpleNamespace(company_id=None, plant_id=None, submitted_by=employee.id)
        theirs = SimpleNamespace(company_id=None, plant_id=employee.plant_id, submitted_by=uuid4())

        assert can_view(employee, mine, owner_column="submitted_by")
        assert not can_view(employee, theirs, owner_column="submitted_by")
        assert can_view(employee, theirs)


class TestRequireRole:
    """Test the endpoint decorator."""

    @staticmethod
    @require_role(Role.COMPANY_ADMIN)
    async def endpoint(current_user=None):
        return "ok"

    def test_allowed(self):
        assert asyncio.run(self.endpoint(current_user=_user(Role.COMPANY_ADMIN))) == "ok"

    def test_forbidden(self):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(self.endpoint(current_user=_user(Role.EMPLOYEE)))
        assert exc_info.value.status_code == 403
        assert "COMPANY_ADMIN" in exc_info.value.detail

    def test_anonymous(self):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(self.endpoint())
        assert exc_info.value.status_code == 401
