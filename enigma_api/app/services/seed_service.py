"""
Idempotent seeding of the first administrator.

``SeedService.seed_admin`` makes sure that, when ``DEFAULT_ADMIN_EMAIL``
and ``DEFAULT_ADMIN_PASSWORD`` are configured, the store contains:

    1. the ``CORE`` domain,
    2. a user with the configured email and the ``admin`` role,
    3. a member profile for that user as president of ``CORE``.

Each record is created only when missing, and existing users are never
modified so that a password rotated by an operator survives
redeployments.  Several processes may cold-start at once and seed the
same store; unique constraints decide the winner and the losers re-read
the surviving row.  Seeding is best effort: failures are logged and
never raised to the request that triggered the bootstrap.
"""

import logging
import sqlite3

from pydantic import ValidationError

from ..core.config import Settings
from ..core.db import Database
from ..core.exceptions import SeedingError
from ..schemas.member import DomainRead
from ..schemas.user import UserBase, UserRead, UserRole
from .member_service import MemberService
from .user_service import UserAlreadyExists, UserService

logger = logging.getLogger(__name__)

CORE_DOMAIN_CODE = "CORE"
CORE_DOMAIN_NAME = "Core"
CORE_DOMAIN_COLOR = "#00FF00"
CORE_DOMAIN_DESCRIPTION = "Core administrative and leadership domain"
DEFAULT_ADMIN_NAME = "Main Admin"
ADMIN_POSITION = "president"


class SeedService:
    """Creates the canonical administrator and its domain records."""

    @classmethod
    async def seed_admin(cls, db: Database, config: Settings) -> None:
        """Seed the administrator.  Never raises."""
        try:
            admin_email = (config.default_admin_email or "").strip()
            admin_password = (config.default_admin_password or "").strip()
            admin_name = (config.default_admin_name or "").strip() or DEFAULT_ADMIN_NAME

            if not admin_email or not admin_password:
                logger.debug("Administrator seeding disabled")
                return

            try:
                UserBase(email=admin_email, name=admin_name)
            except ValidationError as exc:
                fields = ", ".join(str(err["loc"][-1]) for err in exc.errors())
                logger.error(
                    "Administrator account rejected, check DEFAULT_ADMIN_* settings (%s)", fields
                )
                return

            core_domain = await cls._ensure_core_domain(db)
            admin_user = await cls._ensure_admin_user(db, admin_email, admin_password, admin_name)
            created = await MemberService.ensure_profile(
                db,
                user_id=admin_user.id,
                display_name=admin_user.name,
                position=ADMIN_POSITION,
                domain_id=core_domain.id,
            )
            if created:
                logger.info("Member profile created for %s", admin_email)
            logger.info("Admin seeding complete (idempotent)")
        except Exception:
            logger.exception("Seeder error")

    @classmethod
    async def _ensure_core_domain(cls, db: Database) -> DomainRead:
        domain = await MemberService.get_domain(db, CORE_DOMAIN_CODE)
        if domain:
            return domain
        try:
            return await MemberService.create_domain(
                db,
                code=CORE_DOMAIN_CODE,
                name=CORE_DOMAIN_NAME,
                color=CORE_DOMAIN_COLOR,
                description=CORE_DOMAIN_DESCRIPTION,
            )
        except sqlite3.IntegrityError:
            logger.info("Domain %s created concurrently; reusing it", CORE_DOMAIN_CODE)
        domain = await MemberService.get_domain(db, CORE_DOMAIN_CODE)
        if domain is None:
            raise SeedingError(f"Domain {CORE_DOMAIN_CODE} missing after duplicate insert")
        return domain

    @classmethod
    async def _ensure_admin_user(
        cls, db: Database, email: str, password: str, name: str
    ) -> UserRead:
        user = await UserService.get_by_email(db, email)
        if user:
            return user
        try:
            # The operator's password is not held to the self-registration policy.
            user = await UserService.create_account(db, email, name, password, UserRole.admin)
            logger.info("Administrator %s created", email)
            return user
        except UserAlreadyExists:
            logger.info("Administrator %s created concurrently; reusing it", email)
        user = await UserService.get_by_email(db, email)
        if user is None:
            raise SeedingError(f"Administrator {email} missing after duplicate insert")
        return user
