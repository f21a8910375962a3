"""
Configuration for the tool host.

Host-level settings are loaded from environment variables so the same
build can run on a developer laptop, a CI box, or a user's machine
without code changes.

The output ceiling and command timeout bounds are NOT configurable from
the environment. The orchestrating agent reasons about them through the
truncation marker and the timeout message, so they must stay fixed.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

# Hard cap on captured command output (characters)
MAX_OUTPUT_CHARS = 30000
TRUNCATION_MARKER = "\n\n... (truncated)"

# Foreground command timeouts (milliseconds)
DEFAULT_TIMEOUT_MS = 120_000
MAX_TIMEOUT_MS = 600_000

# Files larger than this are refused by Read
MAX_FILE_BYTES = 1_000_000

# Git Bash ships the function-shadowing shell on Windows; cmd/powershell cannot
WINDOWS_GIT_BASH = r"C:\Program Files\Git\bin\bash.exe"


def default_shell() -> str:
    """Shell binary used to run protected commands on this platform."""
    if sys.platform == "win32":
        return WINDOWS_GIT_BASH
    return "bash"


@dataclass
class HostConfig:
    """
    Configuration for a tool host instance.

    deferred_delete_helper is the path of the trusted helper program that
    receives intercepted rm/rmdir/unlink calls. When it is empty, shell
    commands run without the interception preamble.
    """
    home: Path
    deferred_delete_helper: str = ""
    shell_path: str = ""
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.shell_path:
            self.shell_path = default_shell()

    @property
    def state_root(self) -> Path:
        """Directory for per-conversation tool state (todos, tests)."""
        return self.home / "state"

    @property
    def plugins_root(self) -> Path:
        """Directory scanned for plugin manifests."""
        return self.home / "plugins"

    @classmethod
    def from_env(cls) -> "HostConfig":
        """Load configuration from environment variables."""
        home = os.getenv("TOOLHOST_HOME", "").strip()
        return cls(
            home=Path(home).expanduser() if home else Path.home() / ".toolhost",
            deferred_delete_helper=os.getenv("TOOLHOST_DEFERRED_DELETE_HELPER", "").strip(),
            shell_path=os.getenv("TOOLHOST_SHELL", "").strip(),
            log_level=os.getenv("TOOLHOST_LOG_LEVEL", "INFO").upper(),
        )


def truncate(value: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    """Cut value to limit characters and append TRUNCATION_MARKER if it was longer."""
    if len(value) > limit:
        return value[:limit] + TRUNCATION_MARKER
    return value
