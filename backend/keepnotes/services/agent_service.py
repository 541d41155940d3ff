"""
KeepNotes Backend — Agent Service
===================================

What:  Orchestrates one chat turn: build the invocation, run the agent
       process, interpret what it printed.
Why:   Keeps the chat route thin (HTTP concerns only) and gives tests a
       single seam to swap the process launcher.
Who:   A singleton is injected into POST /api/chat via get_agent_service().
When:  Once per chat request; no state is carried between requests.

Concurrency:
    Every request spawns its own agent process. By default nothing limits how
    many run at once. Setting AGENT_MAX_CONCURRENCY > 0 queues excess
    requests on a semaphore instead of spawning more processes.
"""

import asyncio
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from keepnotes.config import Settings, settings as default_settings
from keepnotes.exceptions import ConfigurationError
from keepnotes.schemas.chat import ChatResponse
from keepnotes.services.interpreter import NO_OUTPUT_ERROR, interpret_outcome
from keepnotes.services.worker import (
    Launcher,
    WorkerInvocation,
    WorkerOutcome,
    launch_worker,
    run_worker,
)

logger = logging.getLogger(__name__)

# Fixed additions to the agent's environment
# PYTHONUNBUFFERED: output arrives as it is printed, not at exit
# PYTHONIOENCODING: the agent writes UTF-8 regardless of host locale
AGENT_ENV_OVERRIDES = {
    "PYTHONUNBUFFERED": "1",
    "PYTHONIOENCODING": "utf-8",
}


class AgentService:
    """
    Runs the external agent for a chat message.

    Args:
        settings: Source of the agent path, script and timeout.
        launcher: Starts the process; replaced by spies and stubs in tests.
    """

    def __init__(self, settings: Optional[Settings] = None, launcher: Launcher = launch_worker):
        self.settings = settings or default_settings
        self.launcher = launcher
        limit = self.settings.agent_max_concurrency
        self._slots: Optional[asyncio.Semaphore] = asyncio.Semaphore(limit) if limit else None

    def build_invocation(self, message: str) -> WorkerInvocation:
        """
        Raises:
            ConfigurationError: AGENT_SCRIPT_PATH is not set. Nothing is spawned.
        """
        if not self.settings.agent_configured:
            raise ConfigurationError(
                message="AGENT_SCRIPT_PATH not configured",
                context={"setting": "agent_script_path"},
            )
        command = self.settings.agent_python_path.strip() or "python3"
        env = dict(os.environ)
        env.update(AGENT_ENV_OVERRIDES)
        return WorkerInvocation(
            command=command,
            args=(self.settings.agent_script_path, message),
            env=env,
            timeout_ms=self.settings.agent_timeout_ms,
        )

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        if self._slots is None:
            yield
            return
        async with self._slots:
            yield

    async def run(self, invocation: WorkerInvocation) -> WorkerOutcome:
        run_id = str(uuid.uuid4())[:8]
        async with self._slot():
            start_time = time.perf_counter()
            logger.info(
                "[%s] Starting agent: %s (timeout=%dms)",
                run_id,
                invocation.command,
                invocation.timeout_ms,
            )
            outcome = await run_worker(invocation, launcher=self.launcher)
            duration_ms = (time.perf_counter() - start_time) * 1000

        if outcome.timed_out:
            logger.warning(
                "[%s] Agent killed after %.0fms, stdout=%d chars",
                run_id,
                duration_ms,
                len(outcome.stdout),
            )
        else:
            logger.info(
                "[%s] Agent finished in %.0fms: exit=%s signal=%s stdout=%d chars stderr=%d chars",
                run_id,
                duration_ms,
                outcome.exit_code,
                outcome.terminated_by_signal,
                len(outcome.stdout),
                len(outcome.stderr),
            )
        return outcome

    async def chat(self, message: str) -> ChatResponse:
        """
        Run one chat turn end to end.

        Raises:
            ConfigurationError: agent not configured (before any spawn).
            LaunchError / WorkerError: the process could not start or its
                output could not be read.
        """
        invocation = self.build_invocation(message)
        outcome = await self.run(invocation)
        response = interpret_outcome(outcome)
        if response.error == NO_OUTPUT_ERROR:
            logger.warning("Agent produced no output (stderr=%r)", response.stderr)
        return response


# ── Singleton Instance ────────────────────────────────────────────────────
agent_service = AgentService()


def get_agent_service() -> AgentService:
    """FastAPI dependency; overridden in tests via app.dependency_overrides."""
    return agent_service
