"""
KeepNotes Backend — Custom Exception Hierarchy
================================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes while keeping the `{success: false, error}` body stable.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return JSON error responses with the correct HTTP status codes.
Who:   Raised by routes and services; caught by global handlers.

Exception Hierarchy:
    KeepNotesError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── ConfigurationError       → 500 (agent not configured, nothing spawned)
    └── WorkerError              → 500 (agent process failed mid-run)
        └── LaunchError          → 500 (agent process could not start)

What is deliberately NOT an exception:
    A timed-out agent, an agent that printed nothing, and an agent that
    printed something other than JSON are all ordinary outcomes. They are
    recorded on WorkerOutcome and turned into a response envelope by the
    interpreter, never raised.
"""

from typing import Any, Dict, Optional


class KeepNotesError(Exception):
    """
    Base exception for all KeepNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only partly returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(KeepNotesError):
    """
    Raised when client input fails validation.

    When:    Missing or empty `message` on /api/chat, missing `query` on /api/agent.
    HTTP:    400 Bad Request

    Raised before any agent work starts, so a rejected request never spawns
    a process.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ConfigurationError(KeepNotesError):
    """
    Raised when the agent cannot be invoked because configuration is missing.

    When:    AGENT_SCRIPT_PATH is unset or blank.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Agent is not configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class WorkerError(KeepNotesError):
    """
    Raised when the agent process fails in a way that leaves no outcome to interpret.

    Carries whatever the process wrote before the failure so the 500 body
    can include it: `{success: false, error, stderr, stdout}`.
    """

    def __init__(
        self,
        message: str = "Agent process failed",
        stdout: str = "",
        stderr: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.stdout = stdout
        self.stderr = stderr


class LaunchError(WorkerError):
    """
    Raised when the agent process could not be started at all.

    When:    Executable not found, permission denied, fork/exec resource exhaustion.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Failed to start agent process",
        stdout: str = "",
        stderr: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, stdout=stdout, stderr=stderr, context=context)
