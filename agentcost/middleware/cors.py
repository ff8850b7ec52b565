"""
CORS Middleware
The local dashboard runs on another origin; every response allows any
origin and every OPTIONS request is answered here without reaching a route
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}

class LocalCORSMiddleware(BaseHTTPMiddleware):
    """
    Adds permissive CORS headers to all responses
    """

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            # Preflight never reaches the proxy routes
            return Response(status_code=204, headers=CORS_HEADERS)

        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
