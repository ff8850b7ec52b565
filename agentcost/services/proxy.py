"""
Proxy Engine - transparent forwarding to the upstream LLM providers

PRIVACY: request bodies, response bodies and headers (API keys included)
pass through memory only. Nothing but the `usage` counts and the model name
is read out of a response, and none of it is logged.
"""
import asyncio
import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse, Response

from ..utils.logger import get_logger
from ..utils.storage import StorageError
from .budget import BudgetEvaluator
from .usage_parsers import extract_usage
from .usage_store import UsageStore

logger = get_logger(__name__)

UPSTREAMS: Dict[str, str] = {
    "anthropic": "https://api.anthropic.com",
    "openai": "https://api.openai.com",
}

PROVIDER_PREFIX = re.compile(r"^/(anthropic|openai)")

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

# httpx injects these unless told otherwise; the upstream should only see the client's own
CLIENT_DEFAULT_HEADERS = ("accept", "accept-encoding", "user-agent")


class ProxyState(str, Enum):
    RECEIVING_REQUEST = "receiving_request"
    BUDGET_CHECK = "budget_check"
    FORWARDING = "forwarding"
    RECEIVING_UPSTREAM_RESPONSE = "receiving_upstream_response"
    EXTRACTING_USAGE = "extracting_usage"
    RELAYING = "relaying"
    DONE = "done"
    ERROR = "error"


class ClientDisconnected(Exception):
    """Client went away before the upstream response arrived"""
    pass


def build_upstream_client(
    timeout: float = 600.0,
    connect_timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Shared connection pool for upstream calls"""
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        follow_redirects=False,
        transport=transport,
    )
    for name in CLIENT_DEFAULT_HEADERS:
        if name in client.headers:
            del client.headers[name]
    return client


def upstream_path(raw_path: str, query: str = "") -> str:
    """Strip the provider route prefix; the path stays percent-encoded"""
    path = PROVIDER_PREFIX.sub("", raw_path, count=1) or "/"
    if query:
        path = f"{path}?{query}"
    return path


def forward_headers(
    raw_headers: Iterable[Tuple[bytes, bytes]],
    upstream_host: str,
    body_length: int
) -> List[Tuple[bytes, bytes]]:
    """Inbound headers verbatim, except host, content-length and hop-by-hop headers"""
    headers = [
        (name, value) for name, value in raw_headers
        if name.lower() not in (b"host", b"content-length")
        and name.lower().decode("latin-1") not in HOP_BY_HOP_HEADERS
    ]
    headers.append((b"host", upstream_host.encode("latin-1")))
    headers.append((b"content-length", str(body_length).encode("latin-1")))
    return headers


def relay_headers(upstream_headers: httpx.Headers) -> List[Tuple[str, str]]:
    """Upstream headers minus hop-by-hop ones; content-length is recomputed for the relayed bytes"""
    return [
        (name, value) for name, value in upstream_headers.multi_items()
        if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() != "content-length"
    ]


async def wait_for_disconnect(request: Request) -> None:
    """Return once the client sends http.disconnect; the request body must already be read"""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class ProxyEngine:
    """Forwards one client request per call to `handle`"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        usage_store: UsageStore,
        evaluator: BudgetEvaluator
    ):
        self.client = client
        self.usage_store = usage_store
        self.evaluator = evaluator

    async def handle(self, provider: str, request: Request) -> Response:
        """
        Run one request through the proxy state machine

        Args:
            provider: anthropic or openai
            request: Inbound client request

        Returns:
            The relayed upstream response, a 402 budget block, or a 502 gateway error
        """
        if provider not in UPSTREAMS:
            raise ValueError(f"Unsupported provider: {provider}")

        self._transition(provider, request, ProxyState.RECEIVING_REQUEST)
        body = await request.body()

        self._transition(provider, request, ProxyState.BUDGET_CHECK)
        block = await self.evaluator.check_monthly_budget()
        if block:
            logger.warning(
                f"🚫 Blocked {provider} request: monthly budget exceeded "
                f"(${block.monthly.spent:.2f}/${block.monthly.limit:.2f})"
            )
            self._transition(provider, request, ProxyState.ERROR)
            return JSONResponse(status_code=402, content=block.model_dump())

        self._transition(provider, request, ProxyState.FORWARDING)
        upstream_request = self._build_upstream_request(provider, request, body)
        del body

        try:
            upstream_response, raw_body = await self._send_watching_disconnect(provider, request, upstream_request)
        except ClientDisconnected:
            logger.info(f"Client disconnected, {provider} upstream call cancelled")
            self._transition(provider, request, ProxyState.ERROR)
            # Nobody is left to read this
            return Response(status_code=499)
        except httpx.TimeoutException as e:
            logger.error(f"Proxy error: {provider} upstream timed out ({type(e).__name__})")
            self._transition(provider, request, ProxyState.ERROR)
            return self._gateway_error(f"Upstream {provider} request timed out")
        except httpx.TransportError as e:
            logger.error(f"Proxy error: {provider} upstream unreachable ({type(e).__name__})")
            self._transition(provider, request, ProxyState.ERROR)
            return self._gateway_error(f"Could not reach upstream {provider} ({type(e).__name__})")

        self._transition(provider, request, ProxyState.EXTRACTING_USAGE)
        await self._record(provider, upstream_response, raw_body)

        self._transition(provider, request, ProxyState.RELAYING)
        response = Response(content=raw_body, status_code=upstream_response.status_code)
        for name, value in relay_headers(upstream_response.headers):
            response.headers.append(name, value)

        self._transition(provider, request, ProxyState.DONE)
        return response

    def _build_upstream_request(self, provider: str, request: Request, body: bytes) -> httpx.Request:
        base_url = UPSTREAMS[provider]
        raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
        # Some ASGI servers include the query string in raw_path
        raw_path = raw_path.split(b"?", 1)[0]
        path = upstream_path(raw_path.decode("latin-1"), request.url.query)
        headers = forward_headers(request.headers.raw, httpx.URL(base_url).host, len(body))
        return self.client.build_request(
            request.method,
            f"{base_url}{path}",
            headers=headers,
            content=body,
        )

    async def _send_watching_disconnect(
        self,
        provider: str,
        request: Request,
        upstream_request: httpx.Request
    ) -> Tuple[httpx.Response, bytes]:
        """Race the upstream call against the client's receive channel"""
        send_task = asyncio.ensure_future(self._send(provider, request, upstream_request))
        watch_task = asyncio.ensure_future(wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait({send_task, watch_task}, return_when=asyncio.FIRST_COMPLETED)
            if send_task in done:
                return send_task.result()
            if watch_task.exception() is None:
                raise ClientDisconnected()
            # Receive channel unusable; finish the upstream call unwatched
            logger.warning(f"Disconnect watch failed ({type(watch_task.exception()).__name__})")
            return await send_task
        finally:
            for task in (send_task, watch_task):
                if not task.done():
                    task.cancel()

    async def _send(
        self,
        provider: str,
        request: Request,
        upstream_request: httpx.Request
    ) -> Tuple[httpx.Response, bytes]:
        upstream_response = await self.client.send(upstream_request, stream=True)
        try:
            self._transition(provider, request, ProxyState.RECEIVING_UPSTREAM_RESPONSE)
            chunks = [chunk async for chunk in upstream_response.aiter_raw()]
        finally:
            await upstream_response.aclose()
        return upstream_response, b"".join(chunks)

    async def _record(self, provider: str, upstream_response: httpx.Response, raw_body: bytes) -> None:
        usage = extract_usage(upstream_response, raw_body)
        if usage is None:
            return
        try:
            await self.usage_store.record_usage(provider, usage.model, usage.input_tokens, usage.output_tokens)
        except StorageError as e:
            # The client still gets its response
            logger.error(f"Failed to record usage for {provider}/{usage.model}: {e}")

    @staticmethod
    def _gateway_error(details: str) -> JSONResponse:
        return JSONResponse(status_code=502, content={"error": "Proxy error", "details": details})

    @staticmethod
    def _transition(provider: str, request: Request, state: ProxyState) -> None:
        logger.debug(f"{provider} {request.method} -> {state.value}")
