"""
SmartNotes Backend - Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [CORS] → Route Handler

    Request ID runs first so the access log line and every service log line
    of the request share the same correlation ID.
"""
