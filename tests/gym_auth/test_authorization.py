"""
Tests for role-based authorization.

Role policies mirror the admin panel of the gym backend:
- ADMIN_ONLY: user management
- ADMIN_OR_TEACHER: exercise catalogue
- ADMIN_STAFF_OR_TEACHER: notifications
"""

import pytest

import gym_auth as m
from gym_auth.authorization import ADMIN_ONLY, ADMIN_OR_TEACHER, ADMIN_STAFF_OR_TEACHER


def _identity(subject: str) -> m.VerifiedIdentity:
    return m.VerifiedIdentity(subject=subject, issuer="https://example.supabase.co/auth/v1", expires_at=None)


@pytest.fixture
def authorizer() -> m.RoleAuthorizer:
    users = m.InMemoryUserStore(
        {
            "admin-1": ["user", "admin"],
            "coach-1": ["profe"],
            "desk-1": ["staff"],
            "user-42": ["user"],
        }
    )
    return m.RoleAuthorizer(users)


@pytest.mark.parametrize(
    ("subject", "roles", "allowed"),
    [
        ("admin-1", ADMIN_ONLY, True),
        ("coach-1", ADMIN_ONLY, False),
        ("coach-1", ADMIN_OR_TEACHER, True),
        ("desk-1", ADMIN_OR_TEACHER, False),
        ("desk-1", ADMIN_STAFF_OR_TEACHER, True),
        ("user-42", ADMIN_STAFF_OR_TEACHER, False),
    ],
)
def test_role_policies(authorizer, subject, roles, allowed):
    if allowed:
        authorizer.authorize(_identity(subject), roles=roles)
    else:
        with pytest.raises(m.Forbidden):
            authorizer.authorize(_identity(subject), roles=roles)


def test_empty_requirement_allows_anyone(authorizer):
    """No roles required -> allowed even for unknown subjects."""
    authorizer.authorize(_identity("stranger"), roles=frozenset())


def test_unknown_subject_is_denied(authorizer):
    """Fail closed: a subject with no roles never satisfies a requirement."""
    with pytest.raises(m.Forbidden):
        authorizer.authorize(_identity("stranger"), roles=frozenset({"user"}))


def test_forbidden_is_403():
    assert m.Forbidden.status_code == 403
    assert m.Forbidden.code == "forbidden"
