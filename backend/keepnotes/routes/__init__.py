# Routes package init
"""
KeepNotes Backend — API Routes Package
========================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - chat.py:    POST /api/chat     (run the agent for a message)
                  POST /api/agent    (agent tool endpoint liveness)
    - health.py:  GET  /health       (service health check)
                  GET  /             (redirect to /api-docs)

Design Principle:
    Routes are THIN: extract data from the request, call a service, pick
    the status code. Process handling lives in services/.
"""
