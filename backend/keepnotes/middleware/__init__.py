# Middleware package init
"""
KeepNotes Backend — Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID first: every later log line can carry it
    2. Logging: records status and duration once the response exists
    3. GZip/CORS: FastAPI's stock middleware

There is no rate limiting or admission control at this layer. The only
bound on concurrent agent processes is AGENT_MAX_CONCURRENCY in the service.
"""
