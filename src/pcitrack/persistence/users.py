"""User directory: the notification-relevant slice of user records."""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from pcitrack.models.user import User, UserRole

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Lookup interface for notification recipients."""

    def find_active_admins(self) -> list[User]:
        """Active users with the ADMIN role."""
        ...

    def find_by_id(self, user_id: str) -> User | None:
        """One user, or None."""
        ...


class InMemoryUserDirectory:
    """In-memory user directory for development and tests."""

    def __init__(self, users: list[User] | None = None) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, User] = {u.user_id: u for u in users or []}

    def add(self, user: User) -> None:
        """Insert or replace a user."""
        with self._lock:
            self._users[user.user_id] = user

    def find_active_admins(self) -> list[User]:
        """Active admins, ordered by email for stable fan-out."""
        with self._lock:
            admins = [u for u in self._users.values() if u.role == UserRole.ADMIN and u.is_active]
        return sorted(admins, key=lambda u: u.email)

    def find_by_id(self, user_id: str) -> User | None:
        """One user, or None."""
        with self._lock:
            return self._users.get(user_id)


_USER_COLUMNS = "user_id, name, email, role, is_active, notification_preferences"


def _row_to_user(row: Any) -> User:
    """Convert database row to User."""
    data = dict(row._mapping)
    prefs = data.get("notification_preferences")
    if isinstance(prefs, str):
        data["notification_preferences"] = json.loads(prefs)
    elif prefs is None:
        data.pop("notification_preferences")
    return User.model_validate(data)


class PostgresUserDirectory:
    """Read-only user directory over the users table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def find_active_admins(self) -> list[User]:
        """Active admins, ordered by email for stable fan-out."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"""
                    SELECT {_USER_COLUMNS} FROM users
                    WHERE role = :role AND is_active = true
                    ORDER BY email ASC
                    """
                ),
                {"role": UserRole.ADMIN.value},
            ).fetchall()
        return [_row_to_user(row) for row in rows]

    def find_by_id(self, user_id: str) -> User | None:
        """One user, or None."""
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = :user_id"),
                {"user_id": user_id},
            ).fetchone()
        return _row_to_user(row) if row is not None else None
