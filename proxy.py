"""
Platform-neutral core of the chatjimmy OpenAI proxy.

Adapters hand a ProxyRequest and freshly loaded Settings to
`handle_proxy_request` and get a ProxyResponse back.
"""

import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from config import Settings
from errors import ProxyError, invalid_api_key, method_not_allowed, not_found
from models import OpenAIModel, OpenAIModelList, ProxyRequest, ProxyResponse
from translator import (
    build_completion,
    build_stream_events,
    build_upstream_request,
    extract_text_and_stats,
    loads_json,
    to_json_text,
)

logger = logging.getLogger(__name__)

PATH_ALIASES = {
    "/api": "/",
    "/api/health": "/health",
    "/api/v1-models": "/v1/models",
    "/api/v1-chat-completions": "/v1/chat/completions",
}

UPSTREAM_ERROR_BODY_LIMIT = 500


def normalize_path(pathname: Optional[str]) -> str:
    if not pathname:
        return "/"
    if len(pathname) > 1 and pathname.endswith("/"):
        return pathname.rstrip("/") or "/"
    return pathname


def resolve_path(pathname: Optional[str]) -> str:
    """Normalizes a request path and maps alias paths onto their canonical route."""
    path = normalize_path(pathname)
    return normalize_path(PATH_ALIASES.get(path, path))


def cors_headers(settings: Settings) -> Dict[str, str]:
    return {
        "access-control-allow-origin": settings.ALLOWED_ORIGIN or "*",
        "access-control-allow-methods": "GET,POST,OPTIONS",
        "access-control-allow-headers": "Authorization,Content-Type",
        "access-control-max-age": "86400",
    }


def json_response(data: Any, status_code: int, settings: Settings) -> ProxyResponse:
    headers = cors_headers(settings)
    headers["content-type"] = "application/json; charset=utf-8"
    return ProxyResponse(status_code=status_code, headers=headers, body=to_json_text(data))


def error_response(error: ProxyError, settings: Settings) -> ProxyResponse:
    return json_response(error.to_dict(), error.status_code, settings)


def validate_auth(request: ProxyRequest, settings: Settings) -> None:
    """Raises ProxyError when a bearer token is configured and the request does not carry it."""
    expected = settings.expected_api_key
    if not expected:
        return
    authorization = request.header("authorization")
    actual = authorization[len("Bearer "):].strip() if authorization.startswith("Bearer ") else ""
    if not actual or actual != expected:
        logger.warning("Rejected chat completion request with missing or invalid API key")
        raise invalid_api_key()


def list_models(settings: Settings) -> ProxyResponse:
    """Returns the configured model catalog in OpenAI's /v1/models format."""
    now = int(time.time())
    model_ids = settings.advertised_models
    default_model = settings.default_model
    if default_model not in model_ids:
        model_ids.insert(0, default_model)

    model_list = OpenAIModelList(
        data=[OpenAIModel(id=model_id, created=now, owned_by="chatjimmy") for model_id in model_ids]
    )
    logger.info(f"Listing {len(model_list.data)} models")
    return json_response(model_list.model_dump(), 200, settings)


async def call_upstream(
    payload: Dict[str, Any], settings: Settings, client: Optional[httpx.AsyncClient] = None
) -> str:
    """Posts the translated request upstream and returns the raw reply text."""
    if client is None:
        async with httpx.AsyncClient(timeout=settings.upstream_timeout) as own_client:
            return await call_upstream(payload, settings, own_client)

    url = settings.upstream_url
    logger.info(f"Forwarding chat completion to {url}")
    logger.debug(f"Upstream payload: {payload}")
    try:
        upstream_response = await client.post(
            url,
            json=payload,
            headers={"content-type": "application/json"},
        )
    except (httpx.RequestError, httpx.InvalidURL) as e:
        logger.error(f"Error requesting upstream {url}: {e!r}")
        raise ProxyError(f"upstream request failed: {e}", 502, "api_error", "upstream_error")

    upstream_text = upstream_response.text
    if not upstream_response.is_success:
        logger.error(f"Upstream {url} returned error {upstream_response.status_code}: {upstream_text[:200]}")
        raise ProxyError(
            f"upstream returned {upstream_response.status_code}: {upstream_text[:UPSTREAM_ERROR_BODY_LIMIT]}",
            502,
            "api_error",
            "upstream_status_error",
        )

    logger.debug(f"Raw upstream response body: {upstream_text}")
    return upstream_text


async def chat_completion(
    request: ProxyRequest, settings: Settings, client: Optional[httpx.AsyncClient] = None
) -> ProxyResponse:
    """Translates an OpenAI chat completion request into a chatjimmy call and back."""
    try:
        payload = loads_json(request.body)
    except ValueError:
        raise ProxyError("Request body must be JSON", 400)

    upstream_request = build_upstream_request(payload, settings)
    model = upstream_request.chatOptions.selectedModel
    is_streaming = payload.get("stream") is True
    logger.info(f"Received chat completion request for model: {model}. Streaming: {is_streaming}")

    upstream_text = await call_upstream(upstream_request.model_dump(), settings, client)
    text, stats = extract_text_and_stats(upstream_text)
    completion = build_completion(model, text, stats)
    logger.info(
        f"Completed {completion.id} for model '{model}' "
        f"(prompt_tokens={completion.usage.prompt_tokens}, completion_tokens={completion.usage.completion_tokens})"
    )

    if is_streaming:
        headers = cors_headers(settings)
        headers.update({
            "content-type": "text/event-stream; charset=utf-8",
            "cache-control": "no-cache",
            "connection": "keep-alive",
        })
        return ProxyResponse(status_code=200, headers=headers, events=build_stream_events(completion))
    return json_response(completion.model_dump(), 200, settings)


async def route(
    request: ProxyRequest, settings: Settings, path: str, client: Optional[httpx.AsyncClient] = None
) -> ProxyResponse:
    if path in ("/", "/health"):
        return json_response({"status": "ok"}, 200, settings)

    if path == "/v1/models":
        if request.method != "GET":
            raise method_not_allowed()
        return list_models(settings)

    if path == "/v1/chat/completions":
        if request.method != "POST":
            raise method_not_allowed()
        validate_auth(request, settings)
        return await chat_completion(request, settings, client)

    raise not_found()


async def handle_proxy_request(
    request: ProxyRequest,
    settings: Settings,
    forced_path: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ProxyResponse:
    """
    Entry point shared by every front end.

    `forced_path` pins single-endpoint deployments to one route regardless of
    the URL they were invoked with. When no `client` is given a short-lived
    httpx.AsyncClient is opened for the upstream call.
    """
    path = resolve_path(forced_path or urlparse(request.url).path)

    if request.method == "OPTIONS":
        return ProxyResponse(status_code=204, headers=cors_headers(settings))

    logger.debug(f"{request.method} {request.url} routed to {path}")
    try:
        return await route(request, settings, path, client)
    except ProxyError as e:
        if e.status_code >= 500:
            logger.error(f"{request.method} {path} failed: {e.message} (status: {e.status_code})")
        else:
            logger.info(f"{request.method} {path} rejected: {e.message} (status: {e.status_code})")
        return error_response(e, settings)
