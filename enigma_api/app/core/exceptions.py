"""
Exceptions raised by the bootstrap-and-identity core.

Route handlers keep using ``fastapi.HTTPException``; these types cover
the infrastructure layer, where the middleware decides how a failure
is reported to the caller.
"""

from typing import Optional


class DependencyError(Exception):
    """The datastore could not be prepared for this request.

    Fatal to the current request only.  The next request retries the
    bootstrap from scratch.
    """


class SeedingError(Exception):
    """A step of the administrator seeding failed.

    Always logged and swallowed by the seeder.
    """


class RateLimitExceeded(Exception):
    """A caller exhausted the budget of its tier for the current window."""

    def __init__(self, tier: str, retry_after: int, limit: Optional[int] = None) -> None:
        super().__init__(f"Rate limit exceeded for tier {tier!r}")
        self.tier = tier
        self.retry_after = retry_after
        self.limit = limit
