"""
KeepNotes Backend — Application Configuration
===============================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before app starts.

Agent bridge settings:
    AGENT_PYTHON_PATH      interpreter used to launch the agent (default: python3)
    AGENT_SCRIPT_PATH      agent entry script, required for /api/chat
    AGENT_TIMEOUT_MS       milliseconds before the agent is killed (default: 120000)
    AGENT_MAX_CONCURRENCY  cap on simultaneously running agents (0 = no cap)
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development, except the agent
    script path which has no meaningful default and must be provided before
    the chat endpoint can do anything useful.
    """

    # ── Agent Worker ──────────────────────────────────────────────────────
    # What: Executable used to start the agent process
    # Falls back to whatever `python3` resolves to on PATH
    agent_python_path: str = Field(
        default="python3",
        description="Interpreter or binary used to launch the agent worker",
    )

    # What: Entry point handed to the interpreter as its first argument
    # Empty means "not configured": /api/chat answers 500 before spawning anything
    agent_script_path: str = Field(
        default="",
        description="Path to the agent entry script",
    )

    # What: Hard deadline for a single agent run
    # Why 120s: LLM-backed agents start slowly and may chain several model calls
    agent_timeout_ms: int = Field(default=120_000, ge=1)

    # What: Maximum agents running at once; 0 keeps spawning unbounded
    agent_max_concurrency: int = Field(default=0, ge=0, le=1024)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs, or "*" for any origin
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=5000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @property
    def agent_configured(self) -> bool:
        return bool(self.agent_script_path.strip())

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # AGENT_SCRIPT_PATH and agent_script_path both work
        "extra": "ignore",
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every problem and raises one ValueError listing them.
        """
        errors = []
        if not self.agent_configured:
            errors.append(
                "AGENT_SCRIPT_PATH is not set. "
                "Point it at the agent entry script to enable /api/chat"
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance — imported throughout the application
settings = Settings()
