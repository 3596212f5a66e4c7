"""
MasterMinds Backend — Middleware Package
=========================================

What:  Cross-cutting concerns applied to every request, plus the
       authentication dependencies used by individual routes.

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [Security Headers]
            → [GZip] → [CORS] → Route Handler

    1. Rate Limit first: reject abuse before any processing
    2. Request ID: correlation ID for logs and error envelopes
    3. Logging: sees the final status and total duration
    4. Security headers: applied to every response, errors included
    5. GZip / CORS: FastAPI's stock middleware

Route-level dependencies (auth.py):
    get_current_user, get_optional_user, require_roles, ownership_context,
    UserRateLimiter
"""
