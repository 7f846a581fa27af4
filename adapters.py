"""
Front-end adapters between hosting platforms and the proxy core.

Each adapter turns its platform's request object into a ProxyRequest and a
ProxyResponse back into whatever the platform expects to return.
"""

import asyncio
import base64
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional, Protocol
from urllib.parse import urlsplit, urlunsplit

import httpx
from fastapi import Request
from fastapi.responses import Response, StreamingResponse

from config import Settings, get_settings, setup_logging
from models import ProxyRequest, ProxyResponse
from proxy import handle_proxy_request

logger = logging.getLogger(__name__)

NETLIFY_FUNCTION_PREFIX = "/.netlify/functions/openai"


class PlatformAdapter(Protocol):
    async def to_core_request(self, platform_request: Any) -> ProxyRequest:
        ...

    async def from_core_response(self, response: ProxyResponse) -> Any:
        ...


async def _iterate_events(events: List[str]) -> AsyncGenerator[str, None]:
    for event in events:
        yield event


class AsgiAdapter:
    """Adapter for Starlette/FastAPI requests (uvicorn or any ASGI host)."""

    async def to_core_request(self, platform_request: Request) -> ProxyRequest:
        body = await platform_request.body()
        return ProxyRequest(
            method=platform_request.method,
            url=str(platform_request.url),
            headers=dict(platform_request.headers),
            body=body,
        )

    async def from_core_response(self, response: ProxyResponse) -> Response:
        if response.events is not None:
            return StreamingResponse(
                _iterate_events(response.events),
                status_code=response.status_code,
                headers=response.headers,
            )
        content = response.body.encode("utf-8") if response.body is not None else None
        return Response(content=content, status_code=response.status_code, headers=response.headers)


def resolve_raw_url(event: Dict[str, Any]) -> str:
    if event.get("rawUrl"):
        return event["rawUrl"]
    headers = event.get("headers") or {}
    proto = headers.get("x-forwarded-proto") or "https"
    host = headers.get("host") or "localhost"
    path = event.get("path") or "/"
    query = f"?{event['rawQuery']}" if event.get("rawQuery") else ""
    return f"{proto}://{host}{path}{query}"


def strip_prefix(pathname: str, prefix: str) -> str:
    if pathname == prefix:
        return "/"
    if pathname.startswith(f"{prefix}/"):
        return pathname[len(prefix):] or "/"
    return pathname


class LambdaEventAdapter:
    """Adapter for Netlify Functions / AWS Lambda style event dictionaries."""

    def __init__(self, prefix: str = NETLIFY_FUNCTION_PREFIX):
        self.prefix = prefix

    async def to_core_request(self, platform_request: Dict[str, Any]) -> ProxyRequest:
        event = platform_request
        method = (event.get("httpMethod") or "GET").upper()

        raw_body = event.get("body")
        if raw_body is None or method in ("GET", "HEAD"):
            body = b""
        elif event.get("isBase64Encoded"):
            body = base64.b64decode(raw_body)
        else:
            body = raw_body.encode("utf-8") if isinstance(raw_body, str) else bytes(raw_body)

        parts = urlsplit(resolve_raw_url(event))
        path = strip_prefix(parts.path, self.prefix) or "/"
        return ProxyRequest(
            method=method,
            url=urlunsplit(parts._replace(path=path)),
            headers=event.get("headers") or {},
            body=body,
        )

    async def from_core_response(self, response: ProxyResponse) -> Dict[str, Any]:
        return {
            "statusCode": response.status_code,
            "headers": dict(response.headers),
            "body": response.text,
        }


async def handle_lambda_event(
    event: Dict[str, Any],
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    adapter: PlatformAdapter = LambdaEventAdapter()
    settings = settings or get_settings()
    core_request = await adapter.to_core_request(event)
    core_response = await handle_proxy_request(core_request, settings, client=client)
    return await adapter.from_core_response(core_response)


def netlify_handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Synchronous entry point for Netlify / Lambda Python functions."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.debug(f"Netlify invocation: {event.get('httpMethod')} {event.get('path')}")
    return asyncio.run(handle_lambda_event(event, settings))
