"""
KeepNotes Backend — Agent Result Interpreter
==============================================

What:  Turns a finalized WorkerOutcome into a ChatResponse envelope.
Why:   The agent may print a JSON object, a JSON fragment, plain text, or
       nothing at all. Clients always get the same envelope shape.
How:   Pure functions. No clock, no I/O, no settings: the same outcome
       always produces the same response.

Rules, in order:
    1. Trim stdout and stderr.
    2. Empty stdout            → success=false, "No output from agent"
    3. stdout is a JSON object → responses/actions taken from it
       anything else           → responses=[stdout]
    4. Non-empty stderr is attached on success as well as failure.
"""

import json
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from keepnotes.schemas.chat import ChatResponse
from keepnotes.services.worker import WorkerOutcome

NO_OUTPUT_ERROR = "No output from agent"


@dataclass(frozen=True)
class Parsed:
    value: dict


@dataclass(frozen=True)
class Fallback:
    raw_text: str


ParseResult = Union[Parsed, Fallback]


def parse_structured(text: str) -> ParseResult:
    """Parse `text` as a JSON object; anything else is returned as Fallback."""
    try:
        value = json.loads(text)
    except ValueError:
        return Fallback(text)
    if not isinstance(value, dict):
        return Fallback(text)
    return Parsed(value)


def _as_list(value: Any) -> Optional[List[Any]]:
    if value is None:
        return None
    if isinstance(value, list):
        return value
    return [value]


def extract_responses(payload: dict) -> List[Any]:
    """`responses`, else `raw`, else []; a single value becomes a one-item list."""
    responses = _as_list(payload.get("responses"))
    if responses is None:
        responses = _as_list(payload.get("raw"))
    return responses if responses is not None else []


def interpret_outcome(outcome: WorkerOutcome) -> ChatResponse:
    stdout = outcome.stdout.strip()
    stderr = outcome.stderr.strip() or None

    if not stdout:
        return ChatResponse(
            success=False,
            error=NO_OUTPUT_ERROR,
            stderr=stderr,
            exit_code=outcome.exit_code,
            signal=outcome.terminated_by_signal,
            timed_out=True if outcome.timed_out else None,
        )

    result = parse_structured(stdout)
    if isinstance(result, Parsed):
        return ChatResponse(
            success=True,
            responses=extract_responses(result.value),
            actions=result.value.get("actions"),
            stderr=stderr,
        )
    return ChatResponse(success=True, responses=[result.raw_text], stderr=stderr)
