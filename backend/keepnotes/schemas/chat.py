"""
KeepNotes Backend — Pydantic Request/Response Schemas
======================================================

What:  Pydantic models defining the API contract for the chat and agent endpoints.
Why:   Input validation, serialization, and OpenAPI doc generation.
How:   Routes render these with `model_dump(exclude_none=True)` so optional
       diagnostic fields only appear when they carry something.

Chat response shapes:
    200  {success: true,  responses: [...], actions?: any, stderr?: str}
    500  {success: false, error: str, stderr?: str, stdout?: str,
          exit_code?: int, signal?: str, timed_out?: true}
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ChatRequest(BaseModel):
    """
    What:  Body of POST /api/chat.

    `message` is optional at the schema level so that a missing message gets
    the endpoint's own 400 body instead of FastAPI's generic 422.
    """
    message: Optional[str] = Field(
        default=None,
        description="Text to send to the agent (required, non-empty)",
    )

    model_config = ConfigDict(frozen=True)


class AgentQueryRequest(BaseModel):
    """Body of POST /api/agent."""
    query: Optional[str] = Field(default=None, description="Query for the agent tool surface")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ChatResponse(BaseModel):
    """
    What:  Normalized envelope for everything the agent can produce.
    Who:   Built by the result interpreter, rendered by POST /api/chat.

    Derived once from a finalized worker outcome and never changed afterwards.
    """
    success: bool = Field(description="Whether the agent produced usable output")
    responses: Optional[List[Any]] = Field(
        default=None,
        description="Agent replies, always a list on success",
    )
    actions: Optional[Any] = Field(
        default=None,
        description="Structured actions emitted by the agent, passed through untouched",
    )
    error: Optional[str] = Field(default=None, description="Human-readable failure reason")
    stderr: Optional[str] = Field(default=None, description="Trimmed agent diagnostics")
    stdout: Optional[str] = Field(default=None, description="Raw agent output on failure")
    exit_code: Optional[int] = Field(default=None, description="Agent exit code")
    signal: Optional[str] = Field(default=None, description="Signal that ended the agent")
    timed_out: Optional[bool] = Field(
        default=None,
        description="Present and true when the agent was killed at its deadline",
    )

    model_config = ConfigDict(frozen=True)

    def to_body(self) -> dict:
        return self.model_dump(exclude_none=True)


class AgentQueryResponse(BaseModel):
    """Response of POST /api/agent."""
    success: bool = True
    message: str = "Backend MCP endpoint active"
    received_query: str = Field(alias="receivedQuery")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    """
    What:  Error body shared by every failing endpoint.

    Example:
        {"success": false, "error": "message is required", "request_id": "a1b2c3d4"}
    """
    success: bool = Field(default=False)
    error: str = Field(description="Human-readable error description")
    details: Optional[Any] = Field(default=None, description="Additional error context")
    stderr: Optional[str] = Field(default=None, description="Agent diagnostics, if any")
    stdout: Optional[str] = Field(default=None, description="Agent output, if any")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Liveness report for GET /health."""
    status: str = Field(description="Always 'ok' while the process serves requests")
    version: str = Field(description="Application version")
    agent: str = Field(description="Agent bridge: configured, not_configured")
    uptime_seconds: float = Field(description="Seconds since service started")
