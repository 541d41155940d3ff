"""
KeepNotes Backend — Settings Tests
====================================

What:  Environment parsing and validation for the agent bridge settings.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from keepnotes.config import Settings


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("AGENT_SCRIPT_PATH", raising=False)
        monkeypatch.delenv("AGENT_TIMEOUT_MS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.agent_python_path == "python3"
        assert settings.agent_timeout_ms == 120_000
        assert settings.agent_max_concurrency == 0
        assert settings.agent_configured is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("AGENT_PYTHON_PATH", "/venv/bin/python")
        monkeypatch.setenv("AGENT_SCRIPT_PATH", "/srv/agent/run.py")
        monkeypatch.setenv("AGENT_TIMEOUT_MS", "2500")
        settings = Settings(_env_file=None)

        assert settings.agent_python_path == "/venv/bin/python"
        assert settings.agent_script_path == "/srv/agent/run.py"
        assert settings.agent_timeout_ms == 2500
        assert settings.agent_configured is True

    def test_timeout_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, agent_timeout_ms=0)

    def test_log_level_normalized(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, log_level="chatty")

    def test_cors_origins_list(self):
        settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_production_validation_requires_agent_script(self):
        with pytest.raises(ValueError, match="AGENT_SCRIPT_PATH"):
            Settings(_env_file=None, agent_script_path="").validate_required_for_production()
        Settings(_env_file=None, agent_script_path="/srv/agent/run.py").validate_required_for_production()
