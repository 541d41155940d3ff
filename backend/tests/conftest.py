"""
KeepNotes Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Provides reusable test infrastructure (agent stubs, services, API client).
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Agent stubs:
    Tests never run a real agent. `write_agent` writes a tiny Python script to
    tmp_path; `make_service` builds an AgentService that launches it with the
    interpreter running the tests (sys.executable), so stubs behave the same
    on every machine.

Fixture Hierarchy:
    ├── write_agent:        factory writing stub agent scripts
    ├── make_service:       factory building AgentService for a stub
    ├── spy_launcher:       launcher that records invocations
    ├── test_client:        HTTPX AsyncClient for API endpoint testing
    └── use_agent_service:  route the app's AgentService dependency to a test service
"""

import os
import sys
import textwrap

# Override settings for testing BEFORE any app imports
os.environ["AGENT_SCRIPT_PATH"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from keepnotes.config import Settings
from keepnotes.services.agent_service import AgentService
from keepnotes.services.worker import launch_worker


class SpyLauncher:
    """Records every invocation, then delegates to the real launcher."""

    def __init__(self, inner=launch_worker):
        self.inner = inner
        self.calls = []

    async def __call__(self, invocation):
        self.calls.append(invocation)
        return await self.inner(invocation)


@pytest.fixture
def write_agent(tmp_path):
    """
    Returns a factory: write_agent(source) → path of a stub agent script.

    The source is dedented, so tests can use indented triple-quoted strings.
    The message arrives as sys.argv[1].
    """
    counter = {"n": 0}

    def _write(source: str) -> str:
        counter["n"] += 1
        path = tmp_path / f"agent_{counter['n']}.py"
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def spy_launcher():
    return SpyLauncher()


@pytest.fixture
def make_service():
    """Returns a factory: make_service(script, timeout_ms=..., launcher=...) → AgentService."""

    def _make(
        script: str = "",
        timeout_ms: int = 10_000,
        launcher=launch_worker,
        python: str = sys.executable,
        max_concurrency: int = 0,
    ) -> AgentService:
        settings = Settings(
            agent_python_path=python,
            agent_script_path=script,
            agent_timeout_ms=timeout_ms,
            agent_max_concurrency=max_concurrency,
        )
        return AgentService(settings=settings, launcher=launcher)

    return _make


@pytest_asyncio.fixture
async def test_client():
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from keepnotes.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def use_agent_service():
    """
    Returns a setter that makes POST /api/chat use the given AgentService.

    Overrides are cleared after the test.
    """
    from keepnotes.main import app
    from keepnotes.services.agent_service import get_agent_service

    def _use(service: AgentService) -> AgentService:
        app.dependency_overrides[get_agent_service] = lambda: service
        return service

    yield _use
    app.dependency_overrides.clear()
