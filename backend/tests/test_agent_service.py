"""
KeepNotes Backend — Agent Service Unit Tests
==============================================

What:  Tests for AgentService: invocation building, orchestration, concurrency cap.
How:   Stub agent scripts from conftest, spy launchers, no HTTP.

What we test:
    ✅ Missing AGENT_SCRIPT_PATH raises ConfigurationError before any spawn
    ✅ Invocation carries interpreter, script, message, env and timeout
    ✅ chat() returns interpreted envelopes for real stub agents
    ✅ AGENT_MAX_CONCURRENCY serializes agents; default is unbounded
"""

import asyncio
import logging
import time

import pytest

from keepnotes.exceptions import ConfigurationError, LaunchError
from keepnotes.services.agent_service import AGENT_ENV_OVERRIDES
from keepnotes.services.worker import launch_worker


ECHO_AGENT = """
    import json, sys
    print(json.dumps({"responses": ["echo: " + sys.argv[1]]}))
"""


class TestBuildInvocation:

    def test_missing_script_raises_configuration_error(self, make_service):
        service = make_service(script="")
        with pytest.raises(ConfigurationError) as exc_info:
            service.build_invocation("hi")
        assert exc_info.value.message == "AGENT_SCRIPT_PATH not configured"

    def test_invocation_fields(self, make_service):
        service = make_service(script="/opt/agent/main.py", timeout_ms=1234, python="/usr/bin/python3")
        invocation = service.build_invocation("add milk to my list")

        assert invocation.command == "/usr/bin/python3"
        assert invocation.args == ("/opt/agent/main.py", "add milk to my list")
        assert invocation.timeout_ms == 1234
        assert invocation.timeout_seconds == pytest.approx(1.234)
        for key, value in AGENT_ENV_OVERRIDES.items():
            assert invocation.env[key] == value

    def test_blank_interpreter_falls_back_to_python3(self, make_service):
        service = make_service(script="/opt/agent/main.py", python="  ")
        assert service.build_invocation("hi").command == "python3"


class TestChat:

    @pytest.mark.asyncio
    async def test_configuration_error_spawns_nothing(self, make_service, spy_launcher):
        service = make_service(script="", launcher=spy_launcher)
        with pytest.raises(ConfigurationError):
            await service.chat("hi")
        assert spy_launcher.calls == []

    @pytest.mark.asyncio
    async def test_echo_agent(self, make_service, write_agent, spy_launcher):
        service = make_service(write_agent(ECHO_AGENT), launcher=spy_launcher)
        response = await service.chat("hello")

        assert response.success is True
        assert response.responses == ["echo: hello"]
        assert len(spy_launcher.calls) == 1

    @pytest.mark.asyncio
    async def test_unicode_message_round_trips(self, make_service, write_agent):
        service = make_service(write_agent(ECHO_AGENT))
        response = await service.chat("café ☕ 日本")
        assert response.responses == ["echo: café ☕ 日本"]

    @pytest.mark.asyncio
    async def test_crashing_agent_reports_stderr(self, make_service, write_agent):
        script = write_agent("""
            import sys
            sys.stderr.write("ModuleNotFoundError: no module named 'langchain'\\n")
            sys.exit(1)
        """)
        response = await make_service(script).chat("hi")

        assert response.success is False
        assert response.error == "No output from agent"
        assert response.exit_code == 1
        assert "ModuleNotFoundError" in response.stderr

    @pytest.mark.asyncio
    async def test_timeout_yields_outcome_not_exception(self, make_service, write_agent):
        script = write_agent("""
            import time
            time.sleep(30)
        """)
        start = time.monotonic()
        response = await make_service(script, timeout_ms=400).chat("hi")

        assert response.success is False
        assert response.timed_out is True
        assert time.monotonic() - start < 10

    @pytest.mark.asyncio
    async def test_launch_error_propagates(self, make_service, write_agent):
        service = make_service(write_agent(ECHO_AGENT), python="/nonexistent/python-for-agent")
        with pytest.raises(LaunchError):
            await service.chat("hi")

    @pytest.mark.asyncio
    async def test_silent_agent_is_logged_as_no_output(self, make_service, write_agent, caplog):
        script = write_agent("""
            import sys
            sys.stderr.write("boom\\n")
        """)
        with caplog.at_level(logging.WARNING, logger="keepnotes.services.agent_service"):
            await make_service(script).chat("hi")

        assert any("Agent produced no output" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_answering_agent_is_not_logged_as_no_output(self, make_service, write_agent, caplog):
        with caplog.at_level(logging.WARNING, logger="keepnotes.services.agent_service"):
            await make_service(write_agent(ECHO_AGENT)).chat("hi")

        assert not any("Agent produced no output" in record.getMessage() for record in caplog.records)


class TestConcurrency:

    SLOW_AGENT = """
        import time
        time.sleep(0.4)
        print("done")
    """

    def test_unbounded_by_default(self, make_service):
        assert make_service(script="agent.py")._slots is None

    @pytest.mark.asyncio
    async def test_cap_serializes_agents(self, make_service, write_agent):
        launched = []

        async def timing_launcher(invocation):
            launched.append(time.monotonic())
            return await launch_worker(invocation)

        service = make_service(
            write_agent(self.SLOW_AGENT),
            launcher=timing_launcher,
            max_concurrency=1,
        )
        first, second = await asyncio.gather(service.chat("a"), service.chat("b"))

        assert first.responses == ["done"]
        assert second.responses == ["done"]
        assert launched[1] - launched[0] >= 0.35
