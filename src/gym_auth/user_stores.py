"""User store implementations for the authorization gate.

The gate only needs two questions answered about a verified subject: does
the application still know this user, and which roles do they hold.

Implementations:
- InMemoryUserStore: dict-backed (tests, local development)
- SQLUserStore: reads the ``user_profiles`` table through any DB-API 2.0
  connection (psycopg, sqlite3, ...)

Roles follow the user profile model of the gym backend: a boolean
``is_admin`` flag plus a free-form ``role`` column ("user", "profe",
"staff"). ``is_admin`` is reported as the role "admin".
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterable, Mapping
from contextlib import closing
from typing import Any, Final

from .protocols import UserStore

ADMIN_ROLE: Final[str] = "admin"
DEFAULT_ROLE: Final[str] = "user"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class InMemoryUserStore(UserStore):
    """In-process user registry.

    Example:
        ```python
        users = InMemoryUserStore({"user-42": ["user"]})
        users.add("coach-1", roles=["profe"])
        assert users.user_exists("coach-1")
        ```

    Attributes:
        _users: Mapping of subject -> roles.
    """

    def __init__(self, users: Mapping[str, Iterable[str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, frozenset[str]] = {
            subject: frozenset(roles) for subject, roles in (users or {}).items()
        }

    def add(self, subject: str, roles: Iterable[str] = (DEFAULT_ROLE,)) -> None:
        """Register (or replace) a subject with the given roles."""
        if not subject:
            raise ValueError("subject cannot be empty")
        with self._lock:
            self._users[subject] = frozenset(roles)

    def remove(self, subject: str) -> None:
        """Forget a subject. Unknown subjects are ignored."""
        with self._lock:
            self._users.pop(subject, None)

    def user_exists(self, subject: str) -> bool:
        with self._lock:
            return subject in self._users

    def roles_for(self, subject: str) -> frozenset[str]:
        with self._lock:
            return self._users.get(subject, frozenset())


class SQLUserStore(UserStore):
    """User store backed by the application's ``user_profiles`` table.

    A new connection is opened (and closed) per lookup through ``connect``;
    pass a pool's checkout function to reuse connections.

    Database errors propagate to the caller. The gate turns them into a
    generic authentication failure and logs them.

    Attributes:
        _connect: Zero-argument callable returning a DB-API connection.
        _table: Validated table name.
        _ph: Parameter placeholder of the driver ("%s" for psycopg, "?" for sqlite3).
    """

    def __init__(
        self,
        connect: Callable[[], Any],
        *,
        table: str = "user_profiles",
        placeholder: str = "%s",
    ) -> None:
        """Initialize the SQL user store.

        Raises:
            ValueError: If ``table`` is not a plain (optionally schema-qualified)
                identifier or ``placeholder`` is unsupported.
        """
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name {table!r}")
        if placeholder not in ("%s", "?"):
            raise ValueError(f"Unsupported placeholder {placeholder!r}")

        self._connect = connect
        self._table = table
        self._ph = placeholder

    def _fetchone(self, sql: str, subject: str) -> tuple[Any, ...] | None:
        with closing(self._connect()) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(sql, (subject,))
                return cursor.fetchone()
            finally:
                cursor.close()

    def user_exists(self, subject: str) -> bool:
        row = self._fetchone(
            f"SELECT COUNT(*) FROM {self._table} WHERE user_id = {self._ph}",
            subject,
        )
        return bool(row and row[0] > 0)

    def roles_for(self, subject: str) -> frozenset[str]:
        row = self._fetchone(
            f"SELECT COALESCE(is_admin, false), COALESCE(role, '{DEFAULT_ROLE}') "
            f"FROM {self._table} WHERE user_id = {self._ph}",
            subject,
        )
        if row is None:
            return frozenset()

        is_admin, role = row
        roles = {role} if role else set()
        if is_admin:
            roles.add(ADMIN_ROLE)
        return frozenset(roles)
