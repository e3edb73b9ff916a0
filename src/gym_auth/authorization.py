"""Role-based access control above authentication.

Roles live in the application's user store, not in the token: Supabase
tokens only prove who the caller is. The gym backend gates its admin panel
on three role policies:

- ADMIN_ONLY: user management
- ADMIN_OR_TEACHER: exercise catalogue ("profe" is the teacher role)
- ADMIN_STAFF_OR_TEACHER: admin notifications

Security Notes
--------------
Authorization is fail-closed: a subject the store returns no roles for is
denied whenever any role is required.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from .errors import Forbidden
from .protocols import Authorizer
from .user_stores import ADMIN_ROLE

if TYPE_CHECKING:
    from .protocols import UserStore
    from .verifier import VerifiedIdentity

logger = logging.getLogger(__name__)

TEACHER_ROLE: Final[str] = "profe"
STAFF_ROLE: Final[str] = "staff"

ADMIN_ONLY: Final[frozenset[str]] = frozenset({ADMIN_ROLE})
ADMIN_OR_TEACHER: Final[frozenset[str]] = frozenset({ADMIN_ROLE, TEACHER_ROLE})
ADMIN_STAFF_OR_TEACHER: Final[frozenset[str]] = frozenset({ADMIN_ROLE, TEACHER_ROLE, STAFF_ROLE})


class RoleAuthorizer(Authorizer):
    """Enforces "any-of" role requirements using the user store.

    Examples:
        >>> store = InMemoryUserStore({"u1": ["profe"]})
        >>> authorizer = RoleAuthorizer(store)
        >>> authorizer.authorize(identity_for("u1"), roles=ADMIN_OR_TEACHER)  # Succeeds
        >>> authorizer.authorize(identity_for("u1"), roles=ADMIN_ONLY)  # Raises Forbidden
    """

    def __init__(self, users: UserStore) -> None:
        self._users = users

    def authorize(self, identity: VerifiedIdentity, *, roles: frozenset[str]) -> None:
        """Authorize access when the subject holds at least one required role.

        Args:
            identity: Verified caller.
            roles: Accepted roles (any-of). Empty set means no requirement.

        Raises:
            Forbidden: Roles are required and the subject holds none of them.
        """
        if not roles:
            return

        user_roles = self._users.roles_for(identity.subject)
        if not user_roles.intersection(roles):
            logger.info(
                "Subject %s denied: requires one of %s",
                identity.subject,
                sorted(roles),
            )
            raise Forbidden
