"""UI server: static chat page, runtime config, and a verbatim proxy to the inference server."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles

from startup_bench import __version__
from startup_bench.config import Settings, get_settings
from startup_bench.errors import ProxyError

logger = logging.getLogger(__name__)

PROXY_PREFIX = "/v1"

# Connection-level headers that must not be forwarded in either direction.
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
}


def _forward_headers(headers: httpx.Headers | dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


def create_app(settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> FastAPI:
    """
    Build the UI application.

    ``client`` is used for upstream requests when given (and left open);
    otherwise one is created on startup and closed on shutdown.
    """
    opts = settings or get_settings()
    backend = opts.backend_url.rstrip("/")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if client is not None:
            app.state.client = client
            yield
            return
        async with httpx.AsyncClient(timeout=opts.proxy_timeout) as owned:
            app.state.client = owned
            logger.info("Proxying %s -> %s%s", PROXY_PREFIX, backend, PROXY_PREFIX)
            yield

    app = FastAPI(
        title="Startup Bench UI",
        description="Chat front end proxying completions to an inference server",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> Response:
        logger.error("Proxy Error: %s", exc)
        return PlainTextResponse("Proxy Error", status_code=500)

    @app.get("/api/config")
    async def ui_config() -> JSONResponse:
        """Runtime values the static page cannot know at build time."""
        return JSONResponse({"bucketName": opts.bucket_name or ""})

    @app.api_route(
        PROXY_PREFIX + "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    )
    async def proxy(request: Request) -> Response:
        # raw_path keeps percent-escapes that the decoded path parameter loses
        raw_path = request.scope.get("raw_path") or request.url.path.encode()
        target = backend + raw_path.split(b"?", 1)[0].decode("latin-1")
        logger.info("[Proxy] %s %s -> %s", request.method, request.url.path, target)
        upstream_client: httpx.AsyncClient = request.app.state.client
        try:
            upstream = await upstream_client.request(
                request.method,
                target,
                params=list(request.query_params.multi_items()),
                headers=_forward_headers(dict(request.headers)),
                content=await request.body(),
            )
        except httpx.HTTPError as e:
            raise ProxyError(target, e) from e
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=_forward_headers(upstream.headers),
        )

    if opts.static_dir is not None and opts.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=opts.static_dir, html=True), name="static")
    elif opts.static_dir is not None:
        logger.warning("Static directory %s not found; serving API routes only", opts.static_dir)

    return app


def serve(settings: Settings | None = None) -> None:
    """Run the UI server with uvicorn until interrupted."""
    opts = settings or get_settings()
    logger.info("UI server running at http://%s:%d", opts.host, opts.port)
    uvicorn.run(create_app(opts), host=opts.host, port=opts.port, log_config=None)
