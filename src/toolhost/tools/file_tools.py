"""
File tools: Read, Write, Edit.

All three take an absolute file_path (after ~ and env placeholder
expansion) and refuse system directories.
"""

import logging
from pathlib import Path
from typing import Any

from toolhost.paths import (
    ensure_absolute_path,
    expand_home_path,
    format_with_line_numbers,
    read_file_safe,
)
from toolhost.safety import is_blocked_path
from toolhost.tools import Tool, bool_arg, int_arg, schema, str_arg
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)


def resolve_file_arg(args: dict[str, Any]) -> tuple[str, str | None]:
    """Expand file_path and validate it. Returns (path, error)."""
    file_path = expand_home_path(str_arg(args, "file_path"))
    if not file_path:
        return file_path, "file_path is required."
    error = ensure_absolute_path(file_path) or is_blocked_path(file_path)
    return file_path, error


async def handle_read(args: dict[str, Any], context: ToolContext) -> ToolResult:
    file_path, error = resolve_file_arg(args)
    if error:
        return ToolResult.fail(error)

    path = Path(file_path)
    if not path.exists():
        return ToolResult.fail(f"File not found: {file_path}")
    if path.is_dir():
        return ToolResult.fail(f"Path is a directory, not a file: {file_path}")

    offset = int_arg(args, "offset", 1)
    limit = int_arg(args, "limit", 2000)
    try:
        read = read_file_safe(path)
    except ValueError as e:
        return ToolResult.fail(str(e))
    except OSError as e:
        return ToolResult.fail(f"Error reading file: {e}")

    header, body = format_with_line_numbers(read.content, offset, limit)
    return ToolResult.ok(f"File: {file_path}\n{header}\n\n{body}")


async def handle_write(args: dict[str, Any], context: ToolContext) -> ToolResult:
    file_path, error = resolve_file_arg(args)
    if error:
        return ToolResult.fail(error)
    content = str_arg(args, "content")

    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        return ToolResult.fail(f"Error writing file: {e}")

    lines = len(content.split("\n"))
    logger.debug(f"Wrote {len(content)} chars to {file_path}")
    return ToolResult.ok(f"Wrote {len(content)} characters ({lines} lines) to {file_path}")


async def handle_edit(args: dict[str, Any], context: ToolContext) -> ToolResult:
    file_path, error = resolve_file_arg(args)
    if error:
        return ToolResult.fail(error)
    old_string = str_arg(args, "old_string")
    new_string = str_arg(args, "new_string")
    replace_all = bool_arg(args, "replace_all")
    if not old_string:
        return ToolResult.fail("old_string is required.")

    path = Path(file_path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ToolResult.fail(f"File not found: {file_path}")
    except (OSError, UnicodeDecodeError) as e:
        return ToolResult.fail(f"Error reading file: {e}")

    occurrences = content.count(old_string)
    if occurrences == 0:
        return ToolResult.fail("old_string not found in file.")
    if occurrences > 1 and not replace_all:
        return ToolResult.fail(
            f"old_string appears {occurrences} times. "
            "Provide more context or set replace_all=true."
        )

    if replace_all:
        updated = content.replace(old_string, new_string)
    else:
        updated = content.replace(old_string, new_string, 1)
    try:
        path.write_text(updated, encoding="utf-8")
    except OSError as e:
        return ToolResult.fail(f"Error writing file: {e}")

    replaced = occurrences if replace_all else 1
    return ToolResult.ok(f"Replaced {replaced} occurrence(s) in {file_path}")


_FILE_PATH = {"type": "string", "description": "Absolute path to the file"}


def file_tools() -> list[Tool]:
    return [
        Tool(
            name="Read",
            description="Read a file with line numbers.",
            handler=handle_read,
            parameters=schema(
                {
                    "file_path": _FILE_PATH,
                    "offset": {"type": "number", "description": "1-based first line"},
                    "limit": {"type": "number", "description": "Number of lines (default 2000)"},
                },
                ["file_path"],
            ),
        ),
        Tool(
            name="Write",
            description="Write a file, creating parent directories.",
            handler=handle_write,
            parameters=schema(
                {"file_path": _FILE_PATH, "content": {"type": "string"}},
                ["file_path", "content"],
            ),
        ),
        Tool(
            name="Edit",
            description="Replace text in a file.",
            handler=handle_edit,
            parameters=schema(
                {
                    "file_path": _FILE_PATH,
                    "old_string": {"type": "string"},
                    "new_string": {"type": "string"},
                    "replace_all": {"type": "boolean"},
                },
                ["file_path", "old_string", "new_string"],
            ),
        ),
    ]
