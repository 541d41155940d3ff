"""
KeepNotes Backend — Chat Route Handlers
=========================================

What:  POST /api/chat (message → agent process → envelope) and POST /api/agent
       (liveness echo for the agent tool surface).
Why:   The chat endpoint is the only HTTP entry into the agent bridge.
How:   Validate the body, hand the message to AgentService, render the
       envelope with 200 on success and 500 otherwise.

Error responses produced elsewhere (global exception handlers in main.py):
    400  ValidationError      missing/empty message
    500  ConfigurationError   AGENT_SCRIPT_PATH not set
    500  LaunchError          agent could not be started
    500  WorkerError          agent output could not be read
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from keepnotes.exceptions import ValidationError
from keepnotes.schemas.chat import (
    AgentQueryRequest,
    AgentQueryResponse,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
)
from keepnotes.services.agent_service import AgentService, get_agent_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Chat"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={
        200: {"description": "Agent replied", "model": ChatResponse},
        400: {"description": "Message missing or empty", "model": ErrorResponse},
        500: {"description": "Agent not configured, failed, or silent", "model": ErrorResponse},
    },
    summary="Send a chat message to the agent",
)
async def chat(
    payload: Optional[ChatRequest] = Body(default=None),
    service: AgentService = Depends(get_agent_service),
) -> JSONResponse:
    """
    Run the agent once for `message` and return its normalized reply.

    The agent is killed if it runs past AGENT_TIMEOUT_MS; whatever it managed
    to print is still interpreted.
    """
    message = payload.message if payload else None
    if not message or not message.strip():
        raise ValidationError(message="message is required", field="message")

    logger.info("Chat request: %d chars", len(message))
    response = await service.chat(message)
    return JSONResponse(
        status_code=200 if response.success else 500,
        content=response.to_body(),
    )


@router.post(
    "/agent",
    response_model=AgentQueryResponse,
    responses={400: {"description": "Query missing", "model": ErrorResponse}},
    summary="Check the agent tool endpoint",
)
async def agent_query(payload: Optional[AgentQueryRequest] = Body(default=None)) -> AgentQueryResponse:
    query = payload.query if payload else None
    if not query:
        raise ValidationError(message="Query is required", field="query")
    return AgentQueryResponse(received_query=query)
