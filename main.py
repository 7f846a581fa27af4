import logging
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import Response

from adapters import AsgiAdapter, PlatformAdapter
from config import Settings, get_settings, setup_logging
from proxy import handle_proxy_request

# --- Logging Setup ---
log_level = setup_logging(get_settings().LOG_LEVEL)
logger = logging.getLogger(__name__)
logger.info(f"Logging configured with level: {logging.getLevelName(log_level)}")
# --- End Logging Setup ---

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Provides a per-request client for the upstream chat call."""
    async with httpx.AsyncClient(timeout=settings.upstream_timeout) as client:
        yield client


def create_app(forced_path: Optional[str] = None) -> FastAPI:
    """
    Builds the ASGI app. Every path and method goes through one catch-all
    route so routing, aliases and CORS are handled by the proxy core.
    """
    app = FastAPI(
        title="ChatJimmy OpenAI Compatible Proxy",
        description="Proxy exposing the chatjimmy chat API through OpenAI compatible endpoints.",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    adapter: PlatformAdapter = AsgiAdapter()

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def proxy_endpoint(
        request: Request,
        settings: Settings = Depends(get_settings),
        client: httpx.AsyncClient = Depends(get_http_client),
    ) -> Response:
        core_request = await adapter.to_core_request(request)
        core_response = await handle_proxy_request(
            core_request, settings, forced_path=forced_path, client=client
        )
        return await adapter.from_core_response(core_response)

    return app


app = create_app()
# Single-endpoint deployment: every request is treated as a chat completion
chat_completions_app = create_app(forced_path="/v1/chat/completions")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
