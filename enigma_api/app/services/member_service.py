"""
Service layer for organisational domains and member profiles.

A member profile belongs to exactly one user (``members.user_id`` is
unique).  ``ensure_profile`` creates it with a single
``INSERT ... ON CONFLICT DO NOTHING`` statement, so two writers racing
for the same user end up with one row and neither of them fails.
Role history is stored as a JSON array in ``members.roles``.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from ..core.db import Database
from ..schemas.member import DomainRead, MemberRead, MemberRole, PrimaryRole

logger = logging.getLogger(__name__)


def _row_to_domain(row: sqlite3.Row) -> DomainRead:
    return DomainRead(
        id=row["id"],
        code=row["code"],
        name=row["name"],
        color=row["color"],
        description=row["description"],
    )


class MemberService:
    """Service for domains and member profiles."""

    @classmethod
    async def get_domain(cls, db: Database, code: str) -> Optional[DomainRead]:
        with db.get_cursor() as cursor:
            row = cursor.execute(
                "SELECT id, code, name, color, description FROM domains WHERE code = ?",
                (code,),
            ).fetchone()
        return _row_to_domain(row) if row else None

    @classmethod
    async def create_domain(
        cls, db: Database, code: str, name: str, color: str, description: str
    ) -> DomainRead:
        """Insert a domain.  A duplicate ``code`` raises ``sqlite3.IntegrityError``."""
        with db.get_cursor() as cursor:
            cursor.execute(
                "INSERT INTO domains (code, name, color, description) VALUES (?, ?, ?, ?)",
                (code, name, color, description),
            )
            domain_id = cursor.lastrowid
        logger.info("Domain %s created", code)
        return DomainRead(id=domain_id, code=code, name=name, color=color, description=description)

    @classmethod
    async def ensure_profile(
        cls,
        db: Database,
        user_id: int,
        display_name: str,
        position: str,
        domain_id: int,
    ) -> bool:
        """Create the member profile for ``user_id`` unless one exists.

        Returns ``True`` when this call created the profile and ``False``
        when it already existed.  Either way the write succeeds.
        """
        roles = [
            {
                "position": position,
                "domain_id": domain_id,
                "is_active": True,
                "start_date": datetime.now(timezone.utc).isoformat(),
            }
        ]
        with db.get_cursor() as cursor:
            cursor.execute(
                "INSERT INTO members (user_id, display_name, primary_position, primary_domain_id, roles) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(user_id) DO NOTHING",
                (user_id, display_name, position, domain_id, json.dumps(roles)),
            )
            created = cursor.rowcount == 1
        return created

    @classmethod
    async def list_members(cls, db: Database) -> List[MemberRead]:
        with db.get_cursor() as cursor:
            rows = cursor.execute(
                "SELECT id, user_id, display_name, primary_position, primary_domain_id, roles "
                "FROM members ORDER BY id"
            ).fetchall()
        members: List[MemberRead] = []
        for row in rows:
            primary = None
            if row["primary_position"]:
                primary = PrimaryRole(position=row["primary_position"], domain_id=row["primary_domain_id"])
            members.append(
                MemberRead(
                    id=row["id"],
                    user_id=row["user_id"],
                    display_name=row["display_name"],
                    primary_role=primary,
                    roles=[MemberRole(**role) for role in json.loads(row["roles"] or "[]")],
                )
            )
        return members
