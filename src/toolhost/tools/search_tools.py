"""
Search tools: Glob and Grep.

Glob walks the tree itself. Grep prefers ripgrep when it is on PATH and
falls back to an in-process scan with the same output modes.
"""

import asyncio
import fnmatch
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Any

from toolhost.config import truncate
from toolhost.paths import expand_home_path, glob_to_regex, to_posix, walk_files
from toolhost.safety import blocked_path_prefixes, is_blocked_path, normalize_path
from toolhost.tools import Tool, bool_arg, int_arg, schema, str_arg
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

MAX_GLOB_RESULTS = 1000
DEFAULT_MAX_RESULTS = 100
OUTPUT_MODES = ("files_with_matches", "content", "count")

TYPE_EXTENSIONS: dict[str, list[str]] = {
    "py": [".py"],
    "js": [".js", ".jsx", ".mjs", ".cjs"],
    "ts": [".ts", ".tsx"],
    "rust": [".rs"],
    "go": [".go"],
    "java": [".java"],
    "c": [".c", ".h"],
    "cpp": [".cpp", ".hpp", ".cc", ".hh"],
    "md": [".md", ".markdown"],
    "json": [".json"],
}


def resolve_search_root(args: dict[str, Any]) -> tuple[Path, str | None]:
    raw = expand_home_path(str_arg(args, "path")) or os.getcwd()
    root = Path(raw)
    blocked = is_blocked_path(str(root))
    if blocked:
        return root, blocked
    if not root.exists():
        return root, f"Path not found: {raw}"
    return root, None


def spans_system_dirs(root: Path) -> bool:
    """True if a blocked system directory lives somewhere under root."""
    base = normalize_path(str(root)).rstrip("/") + "/"
    return any(prefix.startswith(base) for prefix in blocked_path_prefixes())


def glob_files(root: Path, pattern: str) -> list[Path]:
    """Files under root matching pattern, newest first."""
    regex = glob_to_regex(to_posix(pattern))
    match_basename = "/" not in pattern
    matches = []
    for path in walk_files(root):
        relative = to_posix(os.path.relpath(path, root))
        candidate = path.name if match_basename else relative
        if regex.match(candidate):
            matches.append(path)

    def mtime(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0

    return sorted(matches, key=mtime, reverse=True)


async def handle_glob(args: dict[str, Any], context: ToolContext) -> ToolResult:
    pattern = str_arg(args, "pattern").strip()
    if not pattern:
        return ToolResult.fail("pattern is required.")
    root, error = resolve_search_root(args)
    if error:
        return ToolResult.fail(error)

    matches = await asyncio.to_thread(glob_files, root, pattern)
    if not matches:
        return ToolResult.ok(f'No files found matching "{pattern}" in {root}')
    shown = matches[:MAX_GLOB_RESULTS]
    lines = "\n".join(str(path) for path in shown)
    more = f"\n\n(showing {len(shown)} of {len(matches)} files)" if len(matches) > len(shown) else ""
    return ToolResult.ok(f"Found {len(matches)} files:\n\n{lines}{more}")


def build_rg_args(
    pattern: str,
    root: Path,
    output_mode: str,
    glob: str | None,
    file_type: str | None,
    case_insensitive: bool,
    context_lines: int,
) -> list[str]:
    argv = ["--no-heading", "--color", "never"]
    if output_mode == "files_with_matches":
        argv.append("--files-with-matches")
    elif output_mode == "count":
        argv.append("--count")
    else:
        argv.append("--line-number")
        if context_lines:
            argv.extend(["--context", str(context_lines)])
    if case_insensitive:
        argv.append("--ignore-case")
    if glob:
        for entry in glob.split(";"):
            if entry.strip():
                argv.extend(["--glob", entry.strip()])
    if file_type:
        argv.extend(["--type", file_type])
    for name in ("node_modules", ".git", "dist", "dist-electron", "release"):
        argv.extend(["--glob", f"!{name}/"])
    argv.extend(["--regexp", pattern, str(root)])
    return argv


async def run_ripgrep(rg: str, argv: list[str]) -> list[str] | None:
    """Run rg; returns output lines, [] for no matches, or None if rg failed."""
    proc = await asyncio.create_subprocess_exec(
        rg, *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode == 1:
        return []
    if proc.returncode != 0:
        logger.warning(f"rg exited {proc.returncode}: {stderr.decode('utf-8', 'replace')[:200]}")
        return None
    return [line for line in stdout.decode("utf-8", "replace").split("\n") if line]


def scan_files(
    regex: re.Pattern[str],
    root: Path,
    output_mode: str,
    glob: str | None,
    file_type: str | None,
    context_lines: int,
) -> list[str]:
    """In-process grep over root with the same output modes as rg."""
    def include(path: Path) -> bool:
        if glob:
            return any(fnmatch.fnmatch(path.name, p.strip()) for p in glob.split(";") if p.strip())
        if file_type and file_type in TYPE_EXTENSIONS:
            return path.suffix in TYPE_EXTENSIONS[file_type]
        return True

    files = [root] if root.is_file() else sorted(p for p in walk_files(root) if include(p))
    results: list[str] = []
    for file_path in files:
        try:
            lines = file_path.read_text(encoding="utf-8").split("\n")
        except (UnicodeDecodeError, OSError):
            continue

        hits = [i for i, line in enumerate(lines) if regex.search(line)]
        hit_set = set(hits)
        if not hits:
            continue
        if output_mode == "files_with_matches":
            results.append(str(file_path))
        elif output_mode == "count":
            results.append(f"{file_path}:{len(hits)}")
        else:
            shown: set[int] = set()
            for i in hits:
                for j in range(max(0, i - context_lines), min(len(lines), i + context_lines + 1)):
                    if j in shown:
                        continue
                    shown.add(j)
                    sep = ":" if j in hit_set else "-"
                    results.append(f"{file_path}{sep}{j + 1}{sep}{lines[j]}")
    return results


async def handle_grep(args: dict[str, Any], context: ToolContext) -> ToolResult:
    pattern = str_arg(args, "pattern")
    if not pattern:
        return ToolResult.fail("pattern is required.")
    output_mode = str_arg(args, "output_mode", "files_with_matches")
    if output_mode not in OUTPUT_MODES:
        return ToolResult.fail(f"output_mode must be one of: {', '.join(OUTPUT_MODES)}")
    root, error = resolve_search_root(args)
    if error:
        return ToolResult.fail(error)

    glob = str_arg(args, "glob") or None
    file_type = str_arg(args, "type") or None
    case_insensitive = bool_arg(args, "case_insensitive")
    context_lines = max(0, int_arg(args, "context_lines", 0))
    max_results = max(1, int_arg(args, "max_results", DEFAULT_MAX_RESULTS))

    lines: list[str] | None = None
    # only the in-process walk prunes system directories
    rg = None if spans_system_dirs(root) else shutil.which("rg")
    if rg:
        argv = build_rg_args(
            pattern, root, output_mode, glob, file_type, case_insensitive, context_lines
        )
        lines = await run_ripgrep(rg, argv)
    if lines is None:
        try:
            regex = re.compile(pattern, re.IGNORECASE if case_insensitive else 0)
        except re.error as e:
            return ToolResult.fail(f"Invalid regex pattern: {e}")
        lines = await asyncio.to_thread(
            scan_files, regex, root, output_mode, glob, file_type, context_lines
        )

    if not lines:
        return ToolResult.ok(f"No matches found for pattern: {pattern}")
    shown = lines[:max_results]
    more = f"\n\n(showing first {max_results} of {len(lines)} results)" if len(lines) > max_results else ""
    return ToolResult.ok(f"Found {len(lines)} result(s):\n\n" + truncate("\n".join(shown) + more))


def search_tools() -> list[Tool]:
    return [
        Tool(
            name="Glob",
            description="Find files by glob pattern, newest first.",
            handler=handle_glob,
            parameters=schema(
                {
                    "pattern": {"type": "string", "description": "e.g. **/*.py"},
                    "path": {"type": "string", "description": "Directory to search"},
                },
                ["pattern"],
            ),
        ),
        Tool(
            name="Grep",
            description="Search file contents by regex.",
            handler=handle_grep,
            parameters=schema(
                {
                    "pattern": {"type": "string"},
                    "path": {"type": "string"},
                    "glob": {"type": "string"},
                    "type": {"type": "string"},
                    "output_mode": {"type": "string", "enum": list(OUTPUT_MODES)},
                    "case_insensitive": {"type": "boolean"},
                    "context_lines": {"type": "number"},
                    "max_results": {"type": "number"},
                },
                ["pattern"],
            ),
        ),
    ]
