# Middleware package init
"""
Mailroom Backend — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID: generate or accept the correlation id
    2. Logging: log method, path, status and duration with that id
    3. GZip / CORS: Starlette's stock middleware

    Responses pass back through the chain in reverse, which is how the
    request id ends up in the response headers.
"""
