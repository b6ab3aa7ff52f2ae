"""Runs the executor against a real PostgreSQL when TEST_DATABASE_URL is set."""

import os
import uuid

import pytest
import pytest_asyncio

from postgres_mcp.config import Settings
from postgres_mcp.errors import WritesDisabled
from postgres_mcp.executor import Executor
from postgres_mcp.store import TargetStore

DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="TEST_DATABASE_URL not set")


@pytest.fixture
def store():
    return TargetStore(DATABASE_URL)


@pytest.fixture
def writer():
    return Executor(Settings(enable_writes=True))


@pytest.fixture
def reader():
    return Executor(Settings(enable_writes=False))


@pytest_asyncio.fixture
async def schema(store, writer):
    name = f"mcp_test_{uuid.uuid4().hex[:8]}"
    await writer.execute(store, "query", {"query": f'CREATE SCHEMA "{name}"'})
    yield name
    await writer.execute(store, "query", {"query": f'DROP SCHEMA "{name}" CASCADE'})


@pytest.mark.asyncio
async def test_list_tables_ordered_by_name(store, writer, schema):
    for table in ("beta", "alpha"):
        await writer.execute(store, "create_table", {"table": table, "columns": "id int", "schema": schema})
    result = await writer.execute(store, "list_tables", {"schema": schema})
    assert [t["table_name"] for t in result["tables"]] == ["alpha", "beta"]


@pytest.mark.asyncio
async def test_insert_then_select_by_primary_key(store, writer, schema):
    await writer.execute(store, "create_table", {
        "table": "people",
        "columns": "id serial PRIMARY KEY, name text NOT NULL, score numeric, created_at timestamptz DEFAULT now()",
        "schema": schema,
    })
    inserted = (await writer.execute(
        store, "insert", {"table": "people", "schema": schema, "data": '{"name": "Ada", "score": 9.5}'}
    ))["inserted"]
    rows = (await writer.execute(
        store, "query", {"query": f'SELECT * FROM "{schema}"."people" WHERE id = {int(inserted["id"])}'}
    ))["rows"]
    assert rows == [inserted]
    assert rows[0]["name"] == "Ada"
    assert rows[0]["score"] == 9.5


@pytest.mark.asyncio
async def test_update_and_delete(store, writer, schema):
    await writer.execute(store, "create_table", {"table": "t", "columns": "id int PRIMARY KEY, v text", "schema": schema})
    await writer.execute(store, "insert", {"table": "t", "schema": schema, "data": '{"id": 1, "v": "a%"}'})
    updated = await writer.execute(
        store, "update", {"table": "t", "schema": schema, "data": '{"v": "b"}', "where": "v LIKE 'a%'"}
    )
    assert updated["rowCount"] == 1
    deleted = await writer.execute(store, "delete", {"table": "t", "schema": schema, "where": "id = 1"})
    assert deleted["deleted"] == [{"id": 1, "v": "b"}]


@pytest.mark.asyncio
async def test_drop_table_is_idempotent(store, writer, schema):
    await writer.execute(store, "create_table", {"table": "gone", "columns": "id int", "schema": schema})
    first = await writer.execute(store, "drop_table", {"table": "gone", "schema": schema})
    second = await writer.execute(store, "drop_table", {"table": "gone", "schema": schema})
    assert first == second == {"success": True, "message": "Table gone dropped"}


@pytest.mark.asyncio
async def test_read_only_drop_leaves_catalog_unchanged(store, writer, reader, schema):
    await writer.execute(store, "create_table", {"table": "x", "columns": "id int", "schema": schema})
    with pytest.raises(WritesDisabled):
        await reader.execute(store, "query", {"query": f'DROP TABLE "{schema}"."x"'})
    result = await reader.execute(store, "list_tables", {"schema": schema})
    assert [t["table_name"] for t in result["tables"]] == ["x"]


@pytest.mark.asyncio
async def test_server_version(store, reader):
    result = await reader.execute(store, "server_version", {})
    assert result["version"].startswith("PostgreSQL")
