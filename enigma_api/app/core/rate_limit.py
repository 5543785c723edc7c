"""
Tiered request-rate admission control.

Every caller address gets an independent fixed window per tier:

    - basic:    every request           (default 100 per 15 minutes)
    - identity: login and registration  (default 5 per 15 minutes)

Only the identity-proving paths themselves use the identity tier; other
routes under the same prefix, such as the current-user lookup, do not.

Identity-proving requests are counted against both tiers, basic first.
Counting is done by ``limits`` with its in-memory storage, so budgets
are per process and are not shared between instances.  A rejected
request still increments its counter, which keeps a caller that keeps
hammering the endpoint blocked until the window rolls over.

Usage:
    controller = AdmissionController("100 per 15 minutes", "5 per 15 minutes")
    decision = controller.admit(client_host, request.url.path)
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from limits import RateLimitItem, parse
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

from .exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

BASIC_TIER = "basic"
IDENTITY_TIER = "identity"


@dataclass
class RateDecision:
    """Outcome of counting one request against one tier."""

    tier: str
    allowed: bool
    limit: int
    remaining: int
    reset_after: int

    def headers(self) -> Dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


class AdmissionController:
    """Fixed-window limiter keyed by caller address and tier."""

    def __init__(
        self,
        basic_limit: str,
        identity_limit: str,
        identity_paths: Iterable[str] = ("/api/v1/auth/login", "/api/v1/auth/register"),
        storage: Optional[Storage] = None,
    ) -> None:
        self.storage = storage or MemoryStorage()
        self.limiter = FixedWindowRateLimiter(self.storage)
        self.limits: Dict[str, RateLimitItem] = {
            BASIC_TIER: parse(basic_limit),
            IDENTITY_TIER: parse(identity_limit),
        }
        self.identity_paths = frozenset(path.rstrip("/") for path in identity_paths)

    def tiers_for(self, path: str) -> List[str]:
        """Tiers a request to ``path`` is counted against, in order."""
        if path.rstrip("/") in self.identity_paths:
            return [BASIC_TIER, IDENTITY_TIER]
        return [BASIC_TIER]

    def hit(self, address: str, tier: str) -> RateDecision:
        """Count one request from ``address`` in ``tier`` and report the window."""
        item = self.limits[tier]
        allowed = self.limiter.hit(item, tier, address)
        reset_time, remaining = self.limiter.get_window_stats(item, tier, address)
        return RateDecision(
            tier=tier,
            allowed=allowed,
            limit=item.amount,
            remaining=max(0, remaining),
            reset_after=max(0, math.ceil(reset_time - time.time())),
        )

    def admit(self, address: str, path: str) -> RateDecision:
        """Admit a request or raise ``RateLimitExceeded``.

        Returns the decision of the strictest tier the request was
        counted against.
        """
        decision = None
        for tier in self.tiers_for(path):
            decision = self.hit(address, tier)
            if not decision.allowed:
                logger.warning(
                    "Rate limit exceeded: tier=%s address=%s path=%s", tier, address, path
                )
                raise RateLimitExceeded(tier, retry_after=decision.reset_after, limit=decision.limit)
        return decision

    def reset(self) -> None:
        """Forget every window."""
        self.storage.reset()
