"""
VoiceConnect Backend: Middleware Package
==========================================

Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting rejects abusive clients before any other work. The request
    ID is assigned before logging so every access line carries it.

Per-route limits (auth, upload, search, ...) are not middleware: they are
FastAPI dependencies declared on the routes, see `rate_limit.RateLimiter`.
"""
