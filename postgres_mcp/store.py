"""Scoped access to a target PostgreSQL database."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import psycopg2
from psycopg2.extras import RealDictCursor

from .validators import redact_descriptor


@dataclass(frozen=True)
class TargetStore:
    """A database identified by its connection descriptor.

    Nothing is cached between calls: each ``cursor()`` block opens its own
    connection and closes it on the way out, whatever happens inside.
    """

    descriptor: str
    application_name: str = "postgres-mcp-server"

    @property
    def redacted(self) -> str:
        return redact_descriptor(self.descriptor)

    def connect(self):
        return psycopg2.connect(self.descriptor, application_name=self.application_name)

    @contextmanager
    def cursor(self, commit: bool = False):
        """Yield a RealDictCursor; commit on success if asked, roll back on error."""
        conn = self.connect()
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cur
                if commit:
                    conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()
        finally:
            conn.close()


def serialize_value(val):
    """Serialize a value for JSON output, recursing into arrays and json/jsonb."""
    if val is None or isinstance(val, (bool, int, float, str)):
        return val
    if isinstance(val, Decimal):
        return float(val)
    if isinstance(val, (date, datetime, time)):
        return val.isoformat()
    if isinstance(val, timedelta):
        return val.total_seconds()
    if isinstance(val, (bytes, bytearray, memoryview)):
        return bytes(val).hex()
    if isinstance(val, dict):
        return {str(k): serialize_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [serialize_value(v) for v in val]
    return str(val)


def rows_to_dicts(cur):
    """Fetch remaining rows as plain dicts; empty when the statement returns none."""
    if not cur.description:
        return []
    return [{k: serialize_value(v) for k, v in row.items()} for row in cur.fetchall()]
