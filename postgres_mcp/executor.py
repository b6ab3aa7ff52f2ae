"""Runs one tool against one target store.

All validation (tool lookup, write gate, argument shape, identifiers)
happens in ``prepare`` before a connection is opened. Only identifiers that
passed ``is_valid_identifier`` are interpolated into SQL text; row values
always travel as bound parameters.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re

import psycopg2
from psycopg2.extras import Json
from starlette.concurrency import run_in_threadpool

from .catalog import (
    CreateFunctionArgs,
    CreateIndexArgs,
    CreateTableArgs,
    DeleteArgs,
    DescribeTableArgs,
    DropFunctionArgs,
    DropIndexArgs,
    DropTableArgs,
    EnableExtensionArgs,
    InsertArgs,
    ListDatabasesArgs,
    ListExtensionsArgs,
    ListTablesArgs,
    QueryArgs,
    ServerVersionArgs,
    UpdateArgs,
    get_tool,
    parse_arguments,
)
from .errors import (
    InvalidIdentifier,
    MalformedArguments,
    MissingFilter,
    StoreError,
    UnknownTool,
    WritesDisabled,
)
from .store import rows_to_dicts
from .validators import is_valid_identifier

logger = logging.getLogger("postgres-mcp")

# Leading-keyword check only; a mutating statement hidden behind a CTE or a
# function call is not caught.
_MUTATING_SQL_RE = re.compile(
    r"^\s*(insert|update|delete|drop|truncate|alter|create|grant|revoke)\b",
    re.IGNORECASE,
)

# record type -> ((field, role used in error messages), ...)
_IDENTIFIER_FIELDS = {
    ListTablesArgs: (("schema", "schema"),),
    DescribeTableArgs: (("table", "table"), ("schema", "schema")),
    CreateTableArgs: (("table", "table"), ("schema", "schema")),
    DropTableArgs: (("table", "table"), ("schema", "schema")),
    EnableExtensionArgs: (("name", "extension"),),
    CreateFunctionArgs: (("name", "function"), ("schema", "schema"), ("language", "language")),
    DropFunctionArgs: (("name", "function"), ("schema", "schema")),
    CreateIndexArgs: (("name", "index"), ("table", "table"), ("schema", "schema"), ("method", "index method")),
    DropIndexArgs: (("name", "index"), ("schema", "schema")),
    InsertArgs: (("table", "table"), ("schema", "schema")),
    UpdateArgs: (("table", "table"), ("schema", "schema")),
    DeleteArgs: (("table", "table"), ("schema", "schema")),
}


def is_mutating_sql(sql) -> bool:
    return bool(_MUTATING_SQL_RE.match(sql or ""))


def _ensure_dict(val, param_name="data"):
    """Coerce a value to a dict; accepts a JSON-encoded object string."""
    if isinstance(val, dict):
        return val
    if isinstance(val, str):
        try:
            parsed = json.loads(val)
        except ValueError:
            raise MalformedArguments(f"{param_name} must be a JSON object, got: {val[:100]}") from None
        if isinstance(parsed, dict):
            return parsed
    raise MalformedArguments(f"{param_name} must be a JSON object, got {type(val).__name__}")


def _adapt(val):
    if isinstance(val, (dict, list)):
        return Json(val)
    return val


def _require_identifier(role, value):
    if not is_valid_identifier(value):
        raise InvalidIdentifier(role, value)


class Executor:
    def __init__(self, settings):
        self._settings = settings

    @property
    def writes_enabled(self) -> bool:
        return self._settings.enable_writes

    def prepare(self, tool_name, arguments):
        """Resolve and validate an invocation; returns ``(tool, record)``.

        Raises before any store access.
        """
        tool = get_tool(tool_name)
        if tool is None:
            raise UnknownTool(tool_name)
        arguments = arguments if arguments is not None else {}

        if tool.requires_filter:
            where = arguments.get("where") if isinstance(arguments, dict) else None
            if not isinstance(where, str) or not where.strip():
                raise MissingFilter(tool.name)

        if tool.writes and not self.writes_enabled:
            raise WritesDisabled()

        record = parse_arguments(tool, arguments)

        if isinstance(record, QueryArgs) and not self.writes_enabled and is_mutating_sql(record.query):
            raise WritesDisabled()

        for field, role in _IDENTIFIER_FIELDS.get(type(record), ()):
            _require_identifier(role, getattr(record, field))

        if isinstance(record, (InsertArgs, UpdateArgs)):
            data = _ensure_dict(record.data)
            if not data:
                raise MalformedArguments("data must contain at least one column")
            for column in data:
                _require_identifier("column", column)
            record = dataclasses.replace(record, data=data)

        return tool, record

    async def execute(self, store, tool_name, arguments):
        tool, record = self.prepare(tool_name, arguments)
        logger.info("Tool %s on %s", tool.name, store.redacted)
        return await run_in_threadpool(self.run, store, tool, record)

    def run(self, store, tool, record):
        commit = tool.writes or isinstance(record, QueryArgs)
        try:
            with store.cursor(commit=commit) as cur:
                return self._dispatch(cur, record)
        except psycopg2.Error as e:
            logger.warning("Tool %s failed: %s", tool.name, e)
            raise StoreError(str(e).strip()) from e

    def _dispatch(self, cur, args):
        if isinstance(args, QueryArgs):
            return _tool_query(cur, args)
        elif isinstance(args, ListDatabasesArgs):
            return _tool_list_databases(cur)
        elif isinstance(args, ListTablesArgs):
            return _tool_list_tables(cur, args)
        elif isinstance(args, DescribeTableArgs):
            return _tool_describe_table(cur, args)
        elif isinstance(args, CreateTableArgs):
            return _tool_create_table(cur, args)
        elif isinstance(args, DropTableArgs):
            return _tool_drop_table(cur, args)
        elif isinstance(args, ListExtensionsArgs):
            return _tool_list_extensions(cur)
        elif isinstance(args, EnableExtensionArgs):
            return _tool_enable_extension(cur, args)
        elif isinstance(args, CreateFunctionArgs):
            return _tool_create_function(cur, args)
        elif isinstance(args, DropFunctionArgs):
            return _tool_drop_function(cur, args)
        elif isinstance(args, CreateIndexArgs):
            return _tool_create_index(cur, args)
        elif isinstance(args, DropIndexArgs):
            return _tool_drop_index(cur, args)
        elif isinstance(args, InsertArgs):
            return _tool_insert(cur, args)
        elif isinstance(args, UpdateArgs):
            return _tool_update(cur, args)
        elif isinstance(args, DeleteArgs):
            return _tool_delete(cur, args)
        elif isinstance(args, ServerVersionArgs):
            return _tool_server_version(cur)
        raise TypeError(f"No handler for {type(args).__name__}")


# ── Tool implementations (read) ──────────────────────────────────────


def _tool_query(cur, args):
    cur.execute(args.query)
    return {"rows": rows_to_dicts(cur), "rowCount": cur.rowcount}


def _tool_list_databases(cur):
    cur.execute(
        "SELECT datname, pg_size_pretty(pg_database_size(datname)) AS size "
        "FROM pg_database WHERE datistemplate = false ORDER BY datname"
    )
    return {"databases": rows_to_dicts(cur)}


def _tool_list_tables(cur, args):
    cur.execute(
        "SELECT table_name, table_type FROM information_schema.tables "
        "WHERE table_schema = %s ORDER BY table_name",
        (args.schema,),
    )
    return {"tables": rows_to_dicts(cur)}


def _tool_describe_table(cur, args):
    cur.execute(
        """
        SELECT column_name, data_type, is_nullable, column_default
        FROM information_schema.columns
        WHERE table_schema = %s AND table_name = %s
        ORDER BY ordinal_position
        """,
        (args.schema, args.table),
    )
    columns = rows_to_dicts(cur)
    cur.execute(
        """
        SELECT constraint_name, constraint_type
        FROM information_schema.table_constraints
        WHERE table_schema = %s AND table_name = %s
        ORDER BY constraint_name
        """,
        (args.schema, args.table),
    )
    return {"columns": columns, "constraints": rows_to_dicts(cur)}


def _tool_list_extensions(cur):
    cur.execute("SELECT extname, extversion FROM pg_extension ORDER BY extname")
    installed = rows_to_dicts(cur)
    cur.execute(
        "SELECT name, comment FROM pg_available_extensions "
        "WHERE installed_version IS NULL ORDER BY name LIMIT 50"
    )
    return {"installed": installed, "available": rows_to_dicts(cur)}


def _tool_server_version(cur):
    cur.execute("SELECT version()")
    rows = rows_to_dicts(cur)
    return {"version": rows[0]["version"] if rows else None}


# ── Tool implementations (DDL) ───────────────────────────────────────


def _done(message):
    return {"success": True, "message": message}


def _tool_create_table(cur, args):
    cur.execute(f'CREATE TABLE "{args.schema}"."{args.table}" ({args.columns})')
    return _done(f"Table {args.table} created")


def _tool_drop_table(cur, args):
    cascade = " CASCADE" if args.cascade else ""
    cur.execute(f'DROP TABLE IF EXISTS "{args.schema}"."{args.table}"{cascade}')
    return _done(f"Table {args.table} dropped")


def _tool_enable_extension(cur, args):
    cur.execute(f'CREATE EXTENSION IF NOT EXISTS "{args.name}"')
    return _done(f"Extension {args.name} enabled")


def _dollar_quote_tag(body):
    """First of $$, $fn$, $fn1$, ... that does not occur in ``body``."""
    tag, n = "$$", 0
    while tag in body:
        tag = f"$fn{n or ''}$"
        n += 1
    return tag


def _tool_create_function(cur, args):
    replace = "OR REPLACE " if args.replace else ""
    tag = _dollar_quote_tag(args.body)
    cur.execute(
        f'CREATE {replace}FUNCTION "{args.schema}"."{args.name}"({args.args or ""}) '
        f"RETURNS {args.returns} LANGUAGE {args.language} AS {tag} {args.body} {tag}"
    )
    return _done(f"Function {args.name} created")


def _tool_drop_function(cur, args):
    cur.execute(f'DROP FUNCTION IF EXISTS "{args.schema}"."{args.name}"({args.args or ""})')
    return _done(f"Function {args.name} dropped")


def _tool_create_index(cur, args):
    unique = "UNIQUE " if args.unique else ""
    cur.execute(
        f'CREATE {unique}INDEX "{args.name}" ON "{args.schema}"."{args.table}" '
        f"USING {args.method} ({args.columns})"
    )
    return _done(f"Index {args.name} created")


def _tool_drop_index(cur, args):
    cur.execute(f'DROP INDEX IF EXISTS "{args.schema}"."{args.name}"')
    return _done(f"Index {args.name} dropped")


# ── Tool implementations (DML) ───────────────────────────────────────


def _tool_insert(cur, args):
    columns = list(args.data)
    col_list = ", ".join(f'"{c}"' for c in columns)
    placeholders = ", ".join(["%s"] * len(columns))
    cur.execute(
        f'INSERT INTO "{args.schema}"."{args.table}" ({col_list}) VALUES ({placeholders}) RETURNING *',
        [_adapt(args.data[c]) for c in columns],
    )
    rows = rows_to_dicts(cur)
    return {"inserted": rows[0] if rows else None}


def _tool_update(cur, args):
    columns = list(args.data)
    set_clause = ", ".join(f'"{c}" = %s' for c in columns)
    # The filter is raw SQL sharing a statement with bound parameters.
    where = args.where.replace("%", "%%")
    cur.execute(
        f'UPDATE "{args.schema}"."{args.table}" SET {set_clause} WHERE {where} RETURNING *',
        [_adapt(args.data[c]) for c in columns],
    )
    return {"updated": rows_to_dicts(cur), "rowCount": cur.rowcount}


def _tool_delete(cur, args):
    cur.execute(f'DELETE FROM "{args.schema}"."{args.table}" WHERE {args.where} RETURNING *')
    return {"deleted": rows_to_dicts(cur), "rowCount": cur.rowcount}
