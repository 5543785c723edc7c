"""
Business logic for users.

Users live in the ``users`` table.  Passwords are hashed by
``core.security.hash_password`` before they are stored; callers always
pass the plain password.  Email addresses are unique, and a duplicate
insert surfaces as ``UserAlreadyExists`` so callers racing each other
can tell "someone else created it" apart from real failures.
"""

import logging
import sqlite3
from typing import Any, Dict, Optional

from ..core.db import Database
from ..core.security import hash_password, verify_password
from ..schemas.user import UserCreate, UserRead, UserRole

logger = logging.getLogger(__name__)


class UserAlreadyExists(ValueError):
    """A user with the given email is already registered."""


def _row_to_user(row: sqlite3.Row) -> UserRead:
    return UserRead(id=row["id"], email=row["email"], name=row["name"], role=row["role"])


class UserService:
    """Service for registering, looking up and authenticating users."""

    @classmethod
    async def create_user(
        cls, db: Database, data: UserCreate, role: UserRole = UserRole.user
    ) -> UserRead:
        """Register a user whose payload passed the self-registration schema.

        Raises
        ------
        UserAlreadyExists
            If the email is already taken.
        """
        logger.info("Registering user %s", data.email)
        return await cls.create_account(db, data.email, data.name, data.password, role)

    @classmethod
    async def create_account(
        cls, db: Database, email: str, name: str, password: str, role: UserRole
    ) -> UserRead:
        """Insert a user with a hashed password.

        No password policy is applied here; operator-provisioned accounts
        come through this path directly.
        """
        hashed = hash_password(password)
        try:
            with db.get_cursor() as cursor:
                cursor.execute(
                    "INSERT INTO users (email, name, password, role) VALUES (?, ?, ?, ?)",
                    (email, name, hashed, role.value),
                )
                user_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise UserAlreadyExists(f"User {email} already exists") from exc
        return UserRead(id=user_id, email=email, name=name, role=role)

    @classmethod
    async def get_by_email(cls, db: Database, email: str) -> Optional[UserRead]:
        with db.get_cursor() as cursor:
            row = cursor.execute(
                "SELECT id, email, name, role FROM users WHERE email = ?", (email,)
            ).fetchone()
        return _row_to_user(row) if row else None

    @classmethod
    async def authenticate(cls, db: Database, email: str, password: str) -> Optional[UserRead]:
        """Return the user if the password matches, otherwise ``None``."""
        with db.get_cursor() as cursor:
            row = cursor.execute(
                "SELECT id, email, name, role, password FROM users WHERE email = ?",
                (email,),
            ).fetchone()
        if not row or not verify_password(password, row["password"]):
            return None
        return _row_to_user(row)

    @staticmethod
    def to_claims_source(user: UserRead) -> Dict[str, Any]:
        return {"id": user.id, "name": user.name, "email": user.email, "role": user.role.value}
