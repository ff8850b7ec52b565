from fastapi import APIRouter, Depends, Request

from ..services.proxy import ProxyEngine
from .deps import get_proxy_engine

router = APIRouter(tags=["Proxy"])

# OPTIONS is answered by the CORS middleware and never forwarded
PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]

@router.api_route("/anthropic/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_anthropic(request: Request, engine: ProxyEngine = Depends(get_proxy_engine)):
    """/anthropic/* -> api.anthropic.com/*"""
    return await engine.handle("anthropic", request)

@router.api_route("/openai/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_openai(request: Request, engine: ProxyEngine = Depends(get_proxy_engine)):
    """/openai/* -> api.openai.com/*"""
    return await engine.handle("openai", request)
