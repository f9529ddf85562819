# Middleware package init
"""
PlaceShare Backend: Middleware Package
=======================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

The request id is set first so the access log line and every error
response carry it.
"""
