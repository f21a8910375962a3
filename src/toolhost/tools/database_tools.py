"""Read-only SQLite queries: SqliteQuery."""

import asyncio
import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any

from toolhost.config import truncate
from toolhost.paths import expand_home_path
from toolhost.safety import is_blocked_path
from toolhost.tools import Tool, int_arg, schema, str_arg
from toolhost.types import ToolContext, ToolResult

DEFAULT_ROW_LIMIT = 100
MAX_ROW_LIMIT = 500
RESULT_CHARS = 20_000
ALLOWED_PREFIXES = ("select", "pragma")


def is_read_query(query: str) -> bool:
    return query.strip().lower().startswith(ALLOWED_PREFIXES)


def clamp_limit(value: int) -> int:
    return max(1, min(value, MAX_ROW_LIMIT))


def query_database(db_path: Path, query: str, limit: int) -> list[dict[str, Any]]:
    """Run query against a read-only connection and return up to limit rows."""
    uri = f"{db_path.resolve().as_uri()}?mode=ro"
    with closing(sqlite3.connect(uri, uri=True)) as conn:
        conn.row_factory = sqlite3.Row
        cursor = conn.execute(query)
        return [dict(row) for row in cursor.fetchmany(limit)]


async def handle_sqlite_query(args: dict[str, Any], context: ToolContext) -> ToolResult:
    raw_path = expand_home_path(str_arg(args, "database_path").strip())
    query = str_arg(args, "query").strip()
    if not raw_path:
        return ToolResult.fail("database_path is required.")
    if not query:
        return ToolResult.fail("query is required.")
    if not is_read_query(query):
        return ToolResult.fail("Only SELECT and PRAGMA queries are allowed.")
    blocked = is_blocked_path(raw_path)
    if blocked:
        return ToolResult.fail(blocked)

    db_path = Path(raw_path)
    if not db_path.is_file():
        return ToolResult.fail(f"Database not found: {raw_path}")
    limit = clamp_limit(int_arg(args, "limit", DEFAULT_ROW_LIMIT))

    try:
        rows = await asyncio.to_thread(query_database, db_path, query, limit)
    except (sqlite3.Error, sqlite3.Warning) as e:
        return ToolResult.fail(f"SQLite error: {e}")

    if not rows:
        return ToolResult.ok("Query returned no results.")
    body = json.dumps(rows, indent=2, default=str)
    return ToolResult.ok(f"Query returned {len(rows)} row(s):\n\n{truncate(body, RESULT_CHARS)}")


def database_tools() -> list[Tool]:
    return [
        Tool(
            name="SqliteQuery",
            description="Run a read-only SELECT or PRAGMA query against a SQLite database.",
            handler=handle_sqlite_query,
            parameters=schema(
                {
                    "database_path": {"type": "string", "description": "Absolute path to the .db file"},
                    "query": {"type": "string"},
                    "limit": {"type": "number", "description": f"Max rows (default {DEFAULT_ROW_LIMIT}, max {MAX_ROW_LIMIT})"},
                },
                ["database_path", "query"],
            ),
        ),
    ]
