"""The sixteen tools this server publishes.

Each tool pairs a JSON-schema style argument list with a frozen argument
record. The executor receives the record, never the raw argument mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

from mcp.types import Tool

from .errors import MalformedArguments

DEFAULT_SCHEMA = "public"


@dataclass(frozen=True)
class ArgumentSpec:
    name: str
    type: str = "string"
    required: bool = False
    default: Any = None
    description: str | None = None

    def to_schema(self):
        prop = {"type": self.type}
        if self.description:
            prop["description"] = self.description
        if not self.required and self.default is not None:
            prop["default"] = self.default
        return prop


# ── Argument records ─────────────────────────────────────────────────


@dataclass(frozen=True)
class QueryArgs:
    query: str


@dataclass(frozen=True)
class ListDatabasesArgs:
    pass


@dataclass(frozen=True)
class ListTablesArgs:
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class DescribeTableArgs:
    table: str
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class CreateTableArgs:
    table: str
    columns: str
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class DropTableArgs:
    table: str
    schema: str = DEFAULT_SCHEMA
    cascade: bool = False


@dataclass(frozen=True)
class ListExtensionsArgs:
    pass


@dataclass(frozen=True)
class EnableExtensionArgs:
    name: str


@dataclass(frozen=True)
class CreateFunctionArgs:
    name: str
    returns: str
    body: str
    args: str = ""
    language: str = "plpgsql"
    replace: bool = True
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class DropFunctionArgs:
    name: str
    args: str = ""
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class CreateIndexArgs:
    name: str
    table: str
    columns: str
    unique: bool = False
    method: str = "btree"
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class DropIndexArgs:
    name: str
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class InsertArgs:
    table: str
    data: Any
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class UpdateArgs:
    table: str
    data: Any
    where: str
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class DeleteArgs:
    table: str
    where: str
    schema: str = DEFAULT_SCHEMA


@dataclass(frozen=True)
class ServerVersionArgs:
    pass


# ── Tool definitions ─────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    record: type
    arguments: tuple[ArgumentSpec, ...] = ()
    writes: bool = False

    @property
    def requires_filter(self) -> bool:
        return any(arg.name == "where" for arg in self.arguments)

    @property
    def input_schema(self) -> dict:
        schema = {
            "type": "object",
            "properties": {arg.name: arg.to_schema() for arg in self.arguments},
        }
        required = [arg.name for arg in self.arguments if arg.required]
        if required:
            schema["required"] = required
        return schema

    def to_mcp(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


def _schema_arg():
    return ArgumentSpec("schema", default=DEFAULT_SCHEMA, description="Schema name")


TOOLS = (
    ToolDefinition(
        name="query",
        description="Execute a SQL query (read-only unless ENABLE_WRITES=true)",
        record=QueryArgs,
        arguments=(ArgumentSpec("query", required=True, description="SQL query to execute"),),
    ),
    ToolDefinition(
        name="list_databases",
        description="List all databases",
        record=ListDatabasesArgs,
    ),
    ToolDefinition(
        name="list_tables",
        description="List tables in a schema",
        record=ListTablesArgs,
        arguments=(_schema_arg(),),
    ),
    ToolDefinition(
        name="describe_table",
        description="Get columns and constraints of a table",
        record=DescribeTableArgs,
        arguments=(
            ArgumentSpec("table", required=True, description="Table name"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="create_table",
        description="Create a table",
        record=CreateTableArgs,
        writes=True,
        arguments=(
            ArgumentSpec("table", required=True, description="Table name"),
            ArgumentSpec(
                "columns",
                required=True,
                description="Column definitions, e.g. 'id SERIAL PRIMARY KEY, name TEXT'",
            ),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="drop_table",
        description="Drop a table if it exists",
        record=DropTableArgs,
        writes=True,
        arguments=(
            ArgumentSpec("table", required=True, description="Table name"),
            _schema_arg(),
            ArgumentSpec("cascade", type="boolean", default=False, description="Add CASCADE"),
        ),
    ),
    ToolDefinition(
        name="list_extensions",
        description="List installed and available extensions",
        record=ListExtensionsArgs,
    ),
    ToolDefinition(
        name="enable_extension",
        description="Enable an extension (e.g., vector)",
        record=EnableExtensionArgs,
        writes=True,
        arguments=(ArgumentSpec("name", required=True, description="Extension name"),),
    ),
    ToolDefinition(
        name="create_function",
        description="Create a function",
        record=CreateFunctionArgs,
        writes=True,
        arguments=(
            ArgumentSpec("name", required=True, description="Function name"),
            ArgumentSpec("args", default="", description="Argument list, e.g. 'a integer, b integer'"),
            ArgumentSpec("returns", required=True, description="Return type"),
            ArgumentSpec("body", required=True, description="Function body"),
            ArgumentSpec("language", default="plpgsql"),
            ArgumentSpec("replace", type="boolean", default=True, description="Use CREATE OR REPLACE"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="drop_function",
        description="Drop a function if it exists",
        record=DropFunctionArgs,
        writes=True,
        arguments=(
            ArgumentSpec("name", required=True, description="Function name"),
            ArgumentSpec("args", default="", description="Argument types of the overload"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="create_index",
        description="Create an index",
        record=CreateIndexArgs,
        writes=True,
        arguments=(
            ArgumentSpec("name", required=True, description="Index name"),
            ArgumentSpec("table", required=True, description="Table name"),
            ArgumentSpec("columns", required=True, description="Indexed columns or expressions"),
            ArgumentSpec("unique", type="boolean", default=False),
            ArgumentSpec("method", default="btree", description="btree, hash, gin, gist, hnsw, ..."),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="drop_index",
        description="Drop an index if it exists",
        record=DropIndexArgs,
        writes=True,
        arguments=(
            ArgumentSpec("name", required=True, description="Index name"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="insert",
        description="Insert a row",
        record=InsertArgs,
        writes=True,
        arguments=(
            ArgumentSpec("table", required=True, description="Table name"),
            ArgumentSpec("data", required=True, description="JSON object of column:value pairs"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="update",
        description="Update rows matching a WHERE clause",
        record=UpdateArgs,
        writes=True,
        arguments=(
            ArgumentSpec("table", required=True, description="Table name"),
            ArgumentSpec("data", required=True, description="JSON object of column:value pairs"),
            ArgumentSpec("where", required=True, description="WHERE clause without the keyword"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="delete",
        description="Delete rows matching a WHERE clause",
        record=DeleteArgs,
        writes=True,
        arguments=(
            ArgumentSpec("table", required=True, description="Table name"),
            ArgumentSpec("where", required=True, description="WHERE clause without the keyword"),
            _schema_arg(),
        ),
    ),
    ToolDefinition(
        name="server_version",
        description="Get PostgreSQL version",
        record=ServerVersionArgs,
    ),
)

_BY_NAME = {tool.name: tool for tool in TOOLS}


def list_tools() -> tuple[ToolDefinition, ...]:
    return TOOLS


def get_tool(name) -> ToolDefinition | None:
    return _BY_NAME.get(name)


def parse_arguments(tool: ToolDefinition, raw):
    """Build the tool's argument record from a raw argument mapping.

    Missing optional arguments (or explicit nulls) take their declared
    default; unknown keys are ignored.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise MalformedArguments(f"arguments for {tool.name} must be an object")
    specs = {arg.name: arg for arg in tool.arguments}
    values = {}
    for field in fields(tool.record):
        spec = specs[field.name]
        value = raw.get(field.name)
        if value is None:
            if spec.required:
                raise MalformedArguments(f"{tool.name}: missing required argument '{field.name}'")
            value = spec.default
        elif spec.type == "boolean" and isinstance(value, str):
            value = value.strip().lower() == "true"
        elif spec.type == "string" and field.name != "data" and not isinstance(value, str):
            raise MalformedArguments(f"{tool.name}: argument '{field.name}' must be a string")
        values[field.name] = value
    return tool.record(**values)
