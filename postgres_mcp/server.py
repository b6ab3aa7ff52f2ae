"""PostgreSQL MCP Server, HTTP/SSE transport.

Endpoints:
  GET  /sse                 SSE stream; requires a target database, sends `connected`
  GET  /mcp                 SSE stream; target optional, sends `connected` + `endpoint`
  POST /mcp/message         JSON-RPC; session from body `connectionId`
  POST /mcp?sessionId=...   JSON-RPC; session from the query string
  POST /tools/{tool}        REST shortcut, body is the tool's argument object
  GET  /health              liveness, unauthenticated

Every route but /health needs the API key (X-API-Key, Authorization: Bearer,
or ?apiKey=). The target database comes from the X-Database-URL header, the
`databaseUrl` body field / query parameter, or the caller's session.
"""

import contextlib
import json
import logging
import secrets

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from . import __version__
from .catalog import list_tools
from .config import Settings
from .dispatcher import SERVER_INFO, Dispatcher
from .errors import AuthRejected, GatewayError, MalformedArguments, MissingTarget
from .executor import Executor
from .sessions import Session, SessionRegistry
from .store import TargetStore
from .validators import is_valid_target_descriptor, redact_descriptor

logger = logging.getLogger("postgres-mcp")


# ── Authentication ───────────────────────────────────────────────────


def _presented_key(request: Request):
    key = request.headers.get("x-api-key")
    if not key:
        auth = request.headers.get("authorization", "")
        if auth.startswith("Bearer "):
            key = auth[len("Bearer "):].strip()
    return key or request.query_params.get("apiKey")


def authenticate(request: Request, settings: Settings):
    if not settings.api_key:
        raise AuthRejected("MCP_API_KEY not configured", status_code=503)
    key = _presented_key(request)
    if not key:
        raise AuthRejected("API key required")
    if not secrets.compare_digest(key.encode(), settings.api_key.encode()):
        raise AuthRejected("Invalid API key")


# ── Helpers ──────────────────────────────────────────────────────────


def _state(request: Request):
    state = request.app.state
    authenticate(request, state.settings)
    return state


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise MalformedArguments("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise MalformedArguments("Request body must be a JSON object")
    return body


def _target_override(request: Request, body=None):
    return (
        request.headers.get("x-database-url")
        or (body or {}).get("databaseUrl")
        or request.query_params.get("databaseUrl")
    )


def format_sse(event: str, data) -> str:
    if not isinstance(data, str):
        data = json.dumps(data, default=str)
    return f"event: {event}\ndata: {data}\n\n"


async def session_events(registry: SessionRegistry, session: Session, keepalive_interval: float):
    """Stream a session's queued events until the caller goes away.

    The session is registered on the first iteration and unregistered when
    the generator closes, which also stops its keep-alive task. A stream that
    is never iterated leaves nothing behind. Tool calls already running are
    left alone.
    """
    registry.register(session)
    try:
        session.start_keepalive(keepalive_interval)
        while True:
            event, data = await session.next_event()
            yield format_sse(event, data)
    finally:
        registry.unregister(session.session_id)


def _open_stream(state, target):
    session = Session(target=target)
    session.push("connected", {
        "connectionId": session.session_id,
        "serverInfo": dict(SERVER_INFO),
        "tools": len(list_tools()),
        "writesEnabled": state.settings.enable_writes,
    })
    return session


def _stream_response(state, session):
    return StreamingResponse(
        session_events(state.registry, session, state.settings.keepalive_interval),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


# ── Streaming endpoints ──────────────────────────────────────────────


async def sse_connect(request: Request):
    """Open an SSE session bound to a target database."""
    state = _state(request)
    target = _target_override(request)
    if not is_valid_target_descriptor(target):
        raise MissingTarget("DATABASE_URL required")
    session = _open_stream(state, target)
    logger.info("SSE session %s -> %s", session.session_id, redact_descriptor(target))
    return _stream_response(state, session)


async def mcp_stream(request: Request):
    """Open an SSE session; the target may be supplied later per call."""
    state = _state(request)
    target = _target_override(request)
    if not is_valid_target_descriptor(target):
        target = None
    session = _open_stream(state, target)
    session.push("endpoint", {"endpoint": f"/mcp?sessionId={session.session_id}"})
    return _stream_response(state, session)


# ── Request/response endpoints ───────────────────────────────────────


async def mcp_message(request: Request):
    """JSON-RPC call; the response is also pushed to `connectionId`'s stream."""
    state = _state(request)
    body = await _json_body(request)
    response = await state.dispatcher.dispatch(
        body,
        session_id=body.get("connectionId"),
        target=_target_override(request, body),
    )
    return JSONResponse(response)


async def mcp_post(request: Request):
    """JSON-RPC call addressed by ?sessionId=."""
    state = _state(request)
    body = await _json_body(request)
    response = await state.dispatcher.dispatch(
        body,
        session_id=request.query_params.get("sessionId"),
        target=_target_override(request, body),
    )
    return JSONResponse(response)


async def call_tool(request: Request):
    """Run a tool directly; no session, target from this request only."""
    state = _state(request)
    body = await _json_body(request)
    body_target = body.pop("databaseUrl", None)
    target = request.headers.get("x-database-url") or body_target
    if not is_valid_target_descriptor(target):
        raise MissingTarget("DATABASE_URL required")
    result = await state.executor.execute(
        state.dispatcher.store_factory(target), request.path_params["tool"], body
    )
    return JSONResponse({"success": True, **result})


async def health(request: Request):
    settings = request.app.state.settings
    return JSONResponse({
        "status": "ok",
        "version": __version__,
        "tools": len(list_tools()),
        "writesEnabled": settings.enable_writes,
    })


# ── Error handlers ───────────────────────────────────────────────────


async def gateway_error(request: Request, exc: GatewayError):
    return JSONResponse({"error": exc.message, "kind": exc.kind}, status_code=exc.status_code)


async def not_found(request: Request, exc):
    return JSONResponse({"error": "Not found"}, status_code=404)


# ── Starlette app ────────────────────────────────────────────────────


def create_app(settings: Settings, registry=None, store_factory=TargetStore) -> Starlette:
    registry = registry if registry is not None else SessionRegistry()
    executor = Executor(settings)
    dispatcher = Dispatcher(executor, registry, store_factory=store_factory)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(
            "Starting postgres-mcp-server v%s (writes %s, %d tools)",
            __version__,
            "enabled" if settings.enable_writes else "disabled",
            len(list_tools()),
        )
        if not settings.api_key:
            logger.warning("MCP_API_KEY not set - server will reject requests")
        yield
        registry.close_all()
        logger.info("Sessions closed")

    origins = list(settings.allowed_origins)
    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/sse", sse_connect, methods=["GET"]),
            Route("/mcp/message", mcp_message, methods=["POST"]),
            Route("/mcp", mcp_stream, methods=["GET"]),
            Route("/mcp", mcp_post, methods=["POST"]),
            Route("/tools/{tool}", call_tool, methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=origins,
                allow_methods=["GET", "POST"],
                allow_headers=["Content-Type", "Authorization", "X-Database-URL", "X-API-Key", "Cache-Control"],
            ),
        ],
        exception_handlers={GatewayError: gateway_error, 404: not_found},
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.executor = executor
    app.state.dispatcher = dispatcher
    return app


# ── Entry point ──────────────────────────────────────────────────────


def main():
    logging.basicConfig(level=logging.INFO)
    settings = Settings.from_env()
    logger.info("Starting on port %d", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
