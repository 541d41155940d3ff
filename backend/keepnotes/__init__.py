"""
KeepNotes Backend — Application Package Initializer
====================================================

What: Marks the `keepnotes` directory as a Python package.
Why:  Enables module imports like `from keepnotes.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The backend is layered the same way for every feature:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Orchestration, agent bridge
    ├─────────────────────────────────────┤
    │             Schemas (Data)          │  ← Pydantic API contracts
    ├─────────────────────────────────────┤
    │       Worker (Subprocess Layer)     │  ← Launch, collect, deadline
    └─────────────────────────────────────┘

    Routes never touch processes directly; they hand a message to the
    AgentService and render whatever envelope comes back.
"""

__version__ = "1.0.0"
