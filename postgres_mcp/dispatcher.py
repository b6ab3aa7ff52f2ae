"""JSON-RPC method handling shared by every transport."""

from __future__ import annotations

import json
import logging

from mcp.types import TextContent

from . import SERVER_NAME, __version__
from .catalog import list_tools
from .errors import RPC_INTERNAL_ERROR, GatewayError, MissingTarget, UnknownMethod
from .store import TargetStore
from .validators import is_valid_target_descriptor

logger = logging.getLogger("postgres-mcp")

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": SERVER_NAME, "version": __version__}


def server_descriptor():
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": dict(SERVER_INFO),
    }


def tools_listing():
    return [tool.to_mcp().model_dump(by_alias=True, exclude_none=True) for tool in list_tools()]


def text_result(payload):
    content = TextContent(type="text", text=json.dumps(payload, indent=2, default=str))
    return {"content": [content.model_dump(exclude_none=True)]}


class Dispatcher:
    """Turns one request envelope into one response envelope.

    Holds no per-request state; sessions are only consulted to find a
    default target and a channel to push the response to.
    """

    def __init__(self, executor, registry, store_factory=TargetStore):
        self.executor = executor
        self.registry = registry
        self.store_factory = store_factory

    async def dispatch(self, message, session_id=None, target=None):
        message = message if isinstance(message, dict) else {}
        request_id = message.get("id")
        method = message.get("method")
        params = message.get("params")
        if not isinstance(params, dict):
            params = {}
        session = self.registry.lookup(session_id)

        try:
            result = await self._handle(method, params, session, target)
            response = {"jsonrpc": "2.0", "id": request_id, "result": result}
        except GatewayError as e:
            response = {"jsonrpc": "2.0", "id": request_id, "error": e.to_rpc_error()}
        except Exception as e:
            logger.exception("Method %s failed", method)
            response = {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": RPC_INTERNAL_ERROR, "message": str(e)},
            }

        if session is not None:
            session.push("response", response)
        return response

    async def _handle(self, method, params, session, target):
        if method == "initialize":
            return server_descriptor()
        elif method == "tools/list":
            return {"tools": tools_listing()}
        elif method == "tools/call":
            descriptor = target or (session.target if session is not None else None)
            if not is_valid_target_descriptor(descriptor):
                raise MissingTarget()
            store = self.store_factory(descriptor)
            payload = await self.executor.execute(store, params.get("name"), params.get("arguments") or {})
            return text_result(payload)
        elif method == "notifications/initialized":
            return {}
        raise UnknownMethod(method)
