"""
Health Check Endpoints
Liveness plus a capability descriptor for the dashboard and command wrapper
"""
from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])

PRIVACY_NOTICE = "Content is never logged or stored. Only token counts are tracked."

@router.get("/")
@router.get("/health")
async def health_check(request: Request):
    """Basic health check endpoint"""
    settings = request.app.state.settings
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "privacy": PRIVACY_NOTICE,
        "endpoints": {
            "stats": "/stats",
            "reset": "/reset",
            "budget": "/api/budget",
            "budgetCheck": "/api/budget/check?model=<model>&estimatedTokens=<tokens>",
        },
        "proxy": {
            "anthropic": "/anthropic/v1/messages",
            "openai": "/openai/v1/chat/completions",
        },
    }
