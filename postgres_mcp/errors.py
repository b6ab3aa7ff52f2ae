"""Failures raised by the executor, dispatcher and transports.

Every error is recoverable at the call boundary: it becomes one JSON-RPC
error envelope or one HTTP error response. Nothing here is retried.
"""

RPC_INTERNAL_ERROR = -32603


class GatewayError(Exception):
    kind = "GatewayError"
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_rpc_error(self):
        return {
            "code": RPC_INTERNAL_ERROR,
            "message": self.message,
            "data": {"kind": self.kind},
        }


class UnknownTool(GatewayError):
    kind = "UnknownTool"
    status_code = 404

    def __init__(self, name):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class UnknownMethod(GatewayError):
    kind = "UnknownMethod"

    def __init__(self, method):
        super().__init__(f"Unknown method: {method}")
        self.method = method


class WritesDisabled(GatewayError):
    kind = "WritesDisabled"
    status_code = 403

    def __init__(self, message="Write operations disabled. Set ENABLE_WRITES=true"):
        super().__init__(message)


class InvalidIdentifier(GatewayError):
    kind = "InvalidIdentifier"
    status_code = 400

    def __init__(self, role, value):
        super().__init__(f"Invalid {role} name: {value!r}")
        self.role = role
        self.value = value


class MissingFilter(GatewayError):
    kind = "MissingFilter"
    status_code = 400

    def __init__(self, tool_name):
        super().__init__(f"{tool_name} requires a non-empty 'where' clause")


class MissingTarget(GatewayError):
    kind = "MissingTarget"
    status_code = 400

    def __init__(self, message="DATABASE_URL required via X-Database-URL header"):
        super().__init__(message)


class MalformedArguments(GatewayError):
    kind = "MalformedArguments"
    status_code = 400


class StoreError(GatewayError):
    """The database rejected the statement; carries its message verbatim."""

    kind = "StoreError"


class AuthRejected(GatewayError):
    kind = "AuthRejected"
    status_code = 403

    def __init__(self, message, status_code=403):
        super().__init__(message)
        self.status_code = status_code
