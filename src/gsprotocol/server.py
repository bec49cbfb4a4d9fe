"""FastAPI gateway that serves ``gs://`` objects over plain HTTP.

``GET``/``HEAD /{bucket}/{key}`` is forwarded to ``gs://{bucket}/{key}``
through an ``httpx.AsyncClient`` with a mounted GSTransport, so the gateway
answers with exactly the status, headers and body the transport produces.
A ``generation`` query parameter selects a noncurrent version.
"""

import email.utils
import logging
import time
import urllib.parse
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import Headers

from gsprotocol.config import GSProtocolConfig
from gsprotocol.errors import InvalidGeneration
from gsprotocol.storage import StorageClient, create_storage_client
from gsprotocol.transport import GSTransport

logger = logging.getLogger(__name__)

# Request headers forwarded to the transport.
_FORWARDED_HEADERS = (
    "if-match",
    "if-none-match",
    "if-modified-since",
    "if-unmodified-since",
)

# Response headers that describe the hop to the transport, not the object.
_HOP_BY_HOP = {"connection", "keep-alive", "transfer-encoding"}

# Paths to suppress from per-request logging
_QUIET_PATHS = {"/metrics", "/health"}

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(excluded_handlers=["/metrics"])
    return _instrumentator


def create_gs_client(storage: StorageClient) -> httpx.AsyncClient:
    """Create an httpx client that routes ``gs://`` URLs to ``storage``."""
    return httpx.AsyncClient(mounts={"gs://": GSTransport(storage)})


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: GSProtocolConfig) -> FastAPI:
    """Create and configure the gateway application.

    The lifespan hook creates the object store client and the mounted httpx
    client on startup and closes them on shutdown.

    Args:
        config: The loaded gsprotocol configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storage = create_storage_client(config.storage)
        app.state.gs_client = create_gs_client(storage)
        logger.info("Object store client initialized: %s", config.storage.backend)

        yield

        # Closing the client closes the mounted transport and its store client.
        await app.state.gs_client.aclose()
        logger.info("Object store client closed")

    app = FastAPI(
        title="gsprotocol gateway",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
        # "/bucket" must not redirect into the object route with an empty key.
        redirect_slashes=False,
    )
    app.state.config = config

    _register_exception_handlers(app)
    _register_middleware(app)

    # Register /metrics before the object catch-all route.
    if config.observability.metrics:
        import gsprotocol.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="gsprotocol").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(request: Request, status: int, code: str, message: str) -> Response:
    # HEAD responses must not have a body
    if request.method == "HEAD":
        return Response(status_code=status)
    return JSONResponse(status_code=status, content={"error": code, "message": message})


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(InvalidGeneration)
    async def invalid_generation_handler(request: Request, exc: InvalidGeneration) -> Response:
        return _error_response(request, 400, "InvalidGeneration", str(exc))

    @app.exception_handler(httpx.TimeoutException)
    async def timeout_handler(request: Request, exc: httpx.TimeoutException) -> Response:
        logger.warning("Object store timed out: %s", exc)
        return _error_response(request, 504, "GatewayTimeout", "The object store timed out.")

    @app.exception_handler(httpx.TransportError)
    async def transport_error_handler(request: Request, exc: httpx.TransportError) -> Response:
        logger.warning("Object store unreachable: %s", exc)
        return _error_response(request, 502, "BadGateway", "The object store is unreachable.")

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return InternalError."""
        logger.exception("Unhandled exception in request handler")
        return _error_response(
            request, 500, "InternalError", "We encountered an internal error. Please try again."
        )


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI) -> None:
    """Register the per-request logging and common headers middleware."""

    @app.middleware("http")
    async def common_headers_middleware(request: Request, call_next) -> Response:
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["Date"] = email.utils.formatdate(usegmt=True)
        response.headers["Server"] = "gsprotocol"

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                },
            )

        return response


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _object_url(bucket: str, key: str, generation: str | None) -> httpx.URL:
    # The key is already decoded; quote it so "%" in a key stays literal.
    path = "/" + urllib.parse.quote(key, safe="/")
    return httpx.URL(scheme="gs", host=bucket, path=path, fragment=generation or "")


def _relay_headers(upstream: httpx.Response, drop: frozenset[str] = frozenset()) -> Headers:
    raw = [
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, value in upstream.headers.multi_items()
        if name not in _HOP_BY_HOP and name not in drop
    ]
    return Headers(raw=raw)


def _setup_routes(app: FastAPI) -> None:
    """Register the health check and the object route."""

    @app.get("/health")
    async def health_check() -> Response:
        """Return static health status."""
        return Response(content='{"status":"ok"}', media_type="application/json")

    @app.api_route("/{bucket}/{key:path}", methods=["GET", "HEAD"])
    async def handle_object(bucket: str, key: str, request: Request) -> Response:
        """Forward GET/HEAD /{bucket}/{key}?generation=N to gs://bucket/key#N."""
        gs_client: httpx.AsyncClient = request.app.state.gs_client

        headers = {
            name: request.headers[name]
            for name in _FORWARDED_HEADERS
            if name in request.headers
        }
        url = _object_url(bucket, key, request.query_params.get("generation"))
        upstream = await gs_client.send(
            gs_client.build_request(request.method, url, headers=headers),
            stream=True,
        )
        if request.method == "GET" and upstream.status_code == 200:
            return StreamingResponse(
                upstream.aiter_raw(),
                status_code=200,
                headers=_relay_headers(upstream),
                background=BackgroundTask(upstream.aclose),
            )

        # 304/412 keep the object's Content-Length while carrying no body, so
        # only HEAD relays it; otherwise it is recomputed from the actual body.
        try:
            body = await upstream.aread()
        finally:
            await upstream.aclose()
        if request.method == "HEAD":
            return Response(status_code=upstream.status_code, headers=_relay_headers(upstream))
        return Response(
            content=body,
            status_code=upstream.status_code,
            headers=_relay_headers(upstream, drop=frozenset({"content-length"})),
        )
