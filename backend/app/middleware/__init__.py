"""
Klara Backend — Middleware Package
====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (last added in create_app() runs first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    - Rate Limit rejects abusive clients before a database session is opened
    - Request ID sets the correlation id read by the logger and error handlers
    - Logging records method, path, status and duration (never bodies, since
      chat messages and notes are private user content)
"""
