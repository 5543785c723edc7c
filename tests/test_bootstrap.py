"""Tests for the once-per-process bootstrap gate."""

import asyncio
import gc
import threading
import time

import pytest
from fastapi.testclient import TestClient

from enigma_api.app.core.bootstrap import BootstrapGate, ProcessState
from enigma_api.app.core.exceptions import DependencyError
from enigma_api.app.main import create_app
from tests.support import make_settings, table_count


class CountingConnect:
    def __init__(self, delay=0.05, error=None):
        self.delay = delay
        self.error = error
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        if self.error is not None:
            raise self.error


class CountingSeed:
    def __init__(self, state=None):
        self.calls = 0
        self.state = state
        self.saw_dependency_ready = None

    async def __call__(self):
        self.calls += 1
        if self.state is not None:
            self.saw_dependency_ready = self.state.dependency_ready
        await asyncio.sleep(0.01)


def test_concurrent_first_requests_share_one_connection_attempt():
    state = ProcessState()
    connect = CountingConnect()
    seed = CountingSeed(state)
    gate = BootstrapGate(state, connect=connect, seed=seed, timeout=5)

    async def main():
        await asyncio.gather(*(gate.ensure_ready() for _ in range(25)))

    asyncio.run(main())

    assert connect.calls == 1
    assert seed.calls == 1
    assert seed.saw_dependency_ready is True
    assert state == ProcessState(dependency_ready=True, seed_completed=True)


def test_ready_gate_does_no_further_work():
    state = ProcessState()
    connect = CountingConnect(delay=0)
    seed = CountingSeed()
    gate = BootstrapGate(state, connect=connect, seed=seed)

    async def main():
        await gate.ensure_ready()
        await gate.ensure_ready()
        await gate.ensure_ready()

    asyncio.run(main())

    assert connect.calls == 1
    assert seed.calls == 1
    assert gate.is_ready


def test_failed_attempt_is_reported_to_every_waiter_then_retried():
    state = ProcessState()
    connect = CountingConnect(error=DependencyError("database is down"))
    seed = CountingSeed()
    gate = BootstrapGate(state, connect=connect, seed=seed, timeout=5)

    async def first_wave():
        return await asyncio.gather(
            *(gate.ensure_ready() for _ in range(10)), return_exceptions=True
        )

    results = asyncio.run(first_wave())

    assert connect.calls == 1
    assert all(isinstance(result, DependencyError) for result in results)
    assert state == ProcessState(dependency_ready=False, seed_completed=False)
    assert seed.calls == 0

    connect.error = None
    asyncio.run(gate.ensure_ready())

    assert connect.calls == 2
    assert seed.calls == 1
    assert gate.is_ready


def test_unexpected_connect_error_becomes_dependency_error():
    state = ProcessState()
    gate = BootstrapGate(state, connect=CountingConnect(delay=0, error=OSError("disk gone")), seed=CountingSeed())

    with pytest.raises(DependencyError):
        asyncio.run(gate.ensure_ready())

    assert not state.dependency_ready


def test_hanging_connect_times_out():
    state = ProcessState()
    connect = CountingConnect(delay=0.5)
    gate = BootstrapGate(state, connect=connect, seed=CountingSeed(), timeout=0.05)

    started = time.perf_counter()
    with pytest.raises(DependencyError, match="timed out"):
        asyncio.run(gate.ensure_ready())

    assert time.perf_counter() - started < 0.5 + 0.4
    assert not state.dependency_ready


def test_cancelled_waiter_does_not_cancel_shared_attempt():
    state = ProcessState()
    connect = CountingConnect(delay=0.1)
    gate = BootstrapGate(state, connect=connect, seed=CountingSeed(), timeout=5)

    async def main():
        impatient = asyncio.ensure_future(gate.ensure_ready())
        patient = asyncio.ensure_future(gate.ensure_ready())
        await asyncio.sleep(0.01)
        impatient.cancel()
        await patient
        return impatient

    impatient = asyncio.run(main())

    assert impatient.cancelled()
    assert connect.calls == 1
    assert gate.is_ready


def test_failure_with_no_remaining_waiters_is_not_reported_as_unretrieved():
    state = ProcessState()
    connect = CountingConnect(delay=0.05, error=DependencyError("refused"))
    gate = BootstrapGate(state, connect=connect, seed=CountingSeed(), timeout=5)

    async def main():
        unhandled = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: unhandled.append(context))
        waiter = asyncio.ensure_future(gate.ensure_ready())
        await asyncio.sleep(0.01)
        attempt = gate._attempt
        waiter.cancel()
        await asyncio.wait([attempt])
        del attempt, waiter
        gc.collect()
        await asyncio.sleep(0)
        return unhandled

    assert asyncio.run(main()) == []
    assert connect.calls == 1
    assert state.dependency_ready is False


def test_seed_marked_complete_even_when_seeder_swallowed_a_failure(tmp_path):
    # The admin seeding fails (email rejected by validation) but the
    # process still counts the seed as done and does not retry it.
    app = create_app(make_settings(tmp_path, default_admin_email="not-an-email"))
    with TestClient(app) as client:
        assert client.get("/api/v1/health").status_code == 200
        assert client.get("/api/v1/health").status_code == 200

    assert app.state.process_state.seed_completed is True
    assert table_count(app.state.db, "users") == 0


def test_unconfigured_database_yields_503_and_process_survives(tmp_path):
    app = create_app(make_settings(tmp_path, database_url=""))
    with TestClient(app) as client:
        response = client.get("/api/v1/health")
        assert response.status_code == 503
        assert response.json() == {"success": False, "message": "Service temporarily unavailable"}

        # Fixing the configuration lets the next request bootstrap from scratch.
        app.state.db.database_url = str(tmp_path / "enigma.db")
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "OK"

    assert app.state.process_state.dependency_ready is True


def test_unreachable_database_does_not_leak_details(tmp_path):
    missing = tmp_path / "no-such-dir" / "enigma.db"
    app = create_app(make_settings(tmp_path, database_url=str(missing)))
    with TestClient(app) as client:
        response = client.get("/")

    assert response.status_code == 503
    assert "no-such-dir" not in response.text
    assert response.headers["Retry-After"] == "5"


def test_first_request_bootstraps_lazily(tmp_path, settings):
    app = create_app(settings)
    # Nothing is created before the first request arrives.
    assert not (tmp_path / "enigma.db").exists()
    assert app.state.process_state == ProcessState()

    with TestClient(app) as client:
        assert client.get("/").json()["status"] == "Running"

    assert app.state.process_state == ProcessState(dependency_ready=True, seed_completed=True)
    assert table_count(app.state.db, "users") == 1
