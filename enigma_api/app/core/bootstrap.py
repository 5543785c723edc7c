"""
Lazy, once-per-process preparation of the datastore.

Under a request-triggered deployment the process may be frozen, reused
or replaced between requests, so nothing is prepared at import or
startup time.  Instead every request awaits ``BootstrapGate.ensure_ready``
before reaching the rest of the middleware chain.  The first caller
starts a single bootstrap attempt (connect + migrate, then seed the
administrator); callers arriving while it is in flight await the same
attempt.  A failed attempt is reported to all of its waiters and
forgotten, so the next request starts over.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .exceptions import DependencyError

logger = logging.getLogger(__name__)


def _consume_outcome(attempt: "asyncio.Future[None]") -> None:
    # Marks the failure as retrieved when every waiter was cancelled; it
    # has already been logged by the attempt itself.
    if not attempt.cancelled():
        attempt.exception()


@dataclass
class ProcessState:
    """Readiness flags shared by every request served by one app instance.

    ``seed_completed`` is only ever set after ``dependency_ready``.
    """

    dependency_ready: bool = False
    seed_completed: bool = False


class BootstrapGate:
    """Run the datastore bootstrap at most once per process.

    Parameters
    ----------
    state : ProcessState
        Flags owned by the hosting application.
    connect : Callable[[], None]
        Blocking callable that prepares the datastore.  It runs in a
        worker thread so that ``timeout`` can be enforced.
    seed : Callable[[], Awaitable[None]]
        Coroutine function invoked once after the first successful
        connect.  Expected to handle its own failures.
    timeout : float
        Seconds to wait for ``connect`` before giving up.
    """

    def __init__(
        self,
        state: ProcessState,
        connect: Callable[[], None],
        seed: Callable[[], Awaitable[None]],
        timeout: float = 10.0,
    ) -> None:
        self.state = state
        self._connect = connect
        self._seed = seed
        self.timeout = timeout
        self._attempt: Optional["asyncio.Future[None]"] = None

    @property
    def is_ready(self) -> bool:
        return self.state.dependency_ready and self.state.seed_completed

    async def ensure_ready(self) -> None:
        """Return once the datastore is ready and the seed has run.

        Raises
        ------
        DependencyError
            If the datastore could not be prepared.  Every request that
            waited on the same attempt receives the same error.
        """
        if self.is_ready:
            return
        if self._attempt is None:
            self._attempt = asyncio.ensure_future(self._bootstrap())
            self._attempt.add_done_callback(_consume_outcome)
        # A waiter that is cancelled (client went away) must not cancel
        # the attempt other requests are waiting on.
        await asyncio.shield(self._attempt)

    async def _bootstrap(self) -> None:
        try:
            if not self.state.dependency_ready:
                await self._connect_with_timeout()
                self.state.dependency_ready = True
                logger.info("Datastore ready")
            if not self.state.seed_completed:
                await self._seed()
                # Marked even if the seeder swallowed a failure; it is not
                # retried until the next cold start.
                self.state.seed_completed = True
        finally:
            self._attempt = None

    async def _connect_with_timeout(self) -> None:
        try:
            await asyncio.wait_for(asyncio.to_thread(self._connect), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Datastore connection timed out after %ss", self.timeout)
            raise DependencyError(f"Datastore connection timed out after {self.timeout}s") from exc
        except DependencyError as exc:
            logger.error("Datastore connection failed: %s", exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected error while connecting to the datastore")
            raise DependencyError(str(exc)) from exc
