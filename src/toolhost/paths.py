"""
Filesystem helpers shared by the file, search and secret-mount code.

Tool arguments are written by a model, so paths arrive in shell-ish
forms ("~/notes", "$HOME/x", "%APPDATA%\\y"). The file and search tools
run in-process rather than in bash, so they expand those forms here.
"""

import base64
import os
import re
import sys
import tempfile
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from toolhost.config import MAX_FILE_BYTES, truncate
from toolhost.safety import is_blocked_path

IGNORED_DIRS = frozenset({"node_modules", ".git", "dist", "dist-electron", "release"})

MAX_LINE_CHARS = 2000
BINARY_PREVIEW_CHARS = 4000


def _placeholders() -> dict[str, str]:
    home = str(Path.home())
    user_profile = os.environ.get("USERPROFILE") or home
    local_app_data = os.environ.get("LOCALAPPDATA") or os.path.join(
        user_profile, "AppData", "Local"
    )
    app_data = os.environ.get("APPDATA") or os.path.join(user_profile, "AppData", "Roaming")
    temp_dir = os.environ.get("TEMP") or os.environ.get("TMP") or tempfile.gettempdir()
    return {
        "USERPROFILE": user_profile,
        "LOCALAPPDATA": local_app_data,
        "APPDATA": app_data,
        "TEMP": temp_dir,
        "TMP": temp_dir,
        "HOME": home,
    }


def expand_home_path(value: str) -> str:
    """Expand ~ and the common $VAR / %VAR% placeholders in a path."""
    home = str(Path.home())
    expanded = re.sub(r"^~(?=$|[\\/])", lambda _: home, value)
    for name, replacement in _placeholders().items():
        expanded = re.sub(
            rf"\${name}\b|%{name}%", lambda _, r=replacement: r, expanded, flags=re.IGNORECASE
        )
    if sys.platform == "win32":
        # Windows has no /tmp but prompts still use it
        temp_dir = _placeholders()["TEMP"]
        expanded = re.sub(r"/tmp\b", lambda _: temp_dir, expanded)
    return expanded


def ensure_absolute_path(file_path: str) -> str | None:
    """Return an error message if file_path is relative, else None."""
    if not os.path.isabs(file_path):
        return f"file_path must be absolute. Received: {file_path}"
    return None


def to_posix(value: str) -> str:
    return value.replace("\\", "/")


def is_ignored_dir(name: str) -> bool:
    return name in IGNORED_DIRS


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Compile a glob into an anchored regex over POSIX-style relative paths.

    "**" matches across directory separators, "*" stays within one
    segment, "?" matches a single character.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            # "**/" may also match zero directories
            parts.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(parts) + "$")


def walk_files(base_path: str | Path) -> Iterator[Path]:
    """
    Yield regular files under base_path.

    Ignored directories and system directories are never entered, and
    entries that cannot be stat'ed are skipped.
    """
    for root, dirs, files in os.walk(base_path, onerror=lambda _: None):
        dirs[:] = [
            d for d in dirs
            if not is_ignored_dir(d) and not is_blocked_path(os.path.join(root, d))
        ]
        for name in files:
            path = Path(root) / name
            try:
                if not path.is_file():
                    continue
            except OSError:
                continue
            yield path


@dataclass
class FileContent:
    content: str
    binary: bool = False


def read_file_safe(file_path: str | Path) -> FileContent:
    """
    Read a file as text, refusing oversized files.

    Raises ValueError for files over MAX_FILE_BYTES. Undecodable files are
    returned as a "[binary:N bytes]" header followed by a base64 preview.
    """
    path = Path(file_path)
    size = path.stat().st_size
    if size > MAX_FILE_BYTES:
        raise ValueError(f"File too large to read safely ({size} bytes): {file_path}")
    data = path.read_bytes()
    try:
        return FileContent(data.decode("utf-8"))
    except UnicodeDecodeError:
        encoded = base64.b64encode(data).decode("ascii")
        preview = truncate(encoded, BINARY_PREVIEW_CHARS)
        return FileContent(f"[binary:{len(data)} bytes]\n{preview}", binary=True)


def format_with_line_numbers(content: str, offset: int = 1, limit: int = 2000) -> tuple[str, str]:
    """Return (header, body) with 1-based, right-aligned line numbers."""
    lines = content.split("\n")
    start = max(0, offset - 1)
    end = min(len(lines), start + limit)
    numbered = []
    for index, line in enumerate(lines[start:end], start=start + 1):
        if len(line) > MAX_LINE_CHARS:
            line = line[:MAX_LINE_CHARS] + "..."
        numbered.append(f"{index:>6}\t{line}")
    header = f"File has {len(lines)} lines. Showing {start + 1}-{end}."
    return header, "\n".join(numbered)


_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def strip_html(html: str) -> str:
    """Crude HTML to text: drop scripts, styles and tags, collapse whitespace."""
    text = _SCRIPT_RE.sub(" ", html)
    text = _STYLE_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()
