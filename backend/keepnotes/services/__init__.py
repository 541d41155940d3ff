# Services package init
"""
KeepNotes Backend — Services Layer
====================================

What:  Business logic between routes (HTTP) and the agent process.

Service Inventory:
    - worker.py:        launch the agent, collect stdout/stderr, enforce the deadline
    - interpreter.py:   pure mapping from a finished run to a ChatResponse
    - agent_service.py: AgentService, the orchestrator injected into routes

Why services are separate from routes:
    1. Testability: the worker layer runs against stub scripts without HTTP
    2. Replaceability: tests swap the launcher without touching routes
"""
