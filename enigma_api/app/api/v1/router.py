"""
Top‑level router for version 1 of the API.

This router aggregates domain‑specific routers under a unified prefix.
Event, RSVP, feedback and showcase routes are served by their own
services and are not part of this package.
"""

from fastapi import APIRouter

from .endpoints import auth, health, members

AUTH_PREFIX = "/auth"

# Routes that prove an identity; the rate limiter keys its strict tier on them.
IDENTITY_PATHS = (f"{AUTH_PREFIX}/login", f"{AUTH_PREFIX}/register")

router = APIRouter()

router.include_router(auth.router, prefix=AUTH_PREFIX, tags=["auth"])
router.include_router(members.router, prefix="/members", tags=["members"])
router.include_router(health.router, prefix="/health", tags=["health"])
