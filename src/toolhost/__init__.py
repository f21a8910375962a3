"""
toolhost - local execution sandbox for an orchestrated agent.

A remote orchestrator sends named tool calls (run a command, read a file,
fetch a URL, ...) to this device. toolhost executes them with bounded
blast radius and returns a uniform {result} | {error}:

1. Destructive shell operations are rerouted to a deferred-delete helper
2. Destructive commands and system paths are refused outright
3. Skill secrets are mounted per call and removed on every exit path
4. Logged arguments and results are redacted
5. Every failure is contained at the dispatcher boundary

This is not a kernel-level sandbox. It bounds mistakes, not adversaries.
"""

__version__ = "0.1.0"

from toolhost.config import HostConfig
from toolhost.dispatcher import ToolDispatcher
from toolhost.errors import MissingSecretError, PluginLoadError, ToolhostError
from toolhost.intake import OrchestratorClient, RequestIntake, ToolRequest
from toolhost.protected_shell import build_protected_command, run_shell
from toolhost.redaction import sanitize_for_logs
from toolhost.safety import is_blocked_path, is_dangerous_command, validate_skill_content
from toolhost.secret_mounts import (
    CredentialRequest,
    CredentialResponse,
    SecretLookup,
    SecretMountSession,
    SecretResolver,
)
from toolhost.shell_registry import ShellRecord, ShellRegistry
from toolhost.tools import Tool
from toolhost.types import (
    ResolvedSecret,
    SecretMounts,
    SecretMountSpec,
    Skill,
    ToolContext,
    ToolResult,
)

__all__ = [
    "HostConfig",
    "ToolDispatcher",
    "ToolhostError",
    "MissingSecretError",
    "PluginLoadError",
    "OrchestratorClient",
    "RequestIntake",
    "ToolRequest",
    "build_protected_command",
    "run_shell",
    "sanitize_for_logs",
    "is_blocked_path",
    "is_dangerous_command",
    "validate_skill_content",
    "CredentialRequest",
    "CredentialResponse",
    "SecretLookup",
    "SecretMountSession",
    "SecretResolver",
    "ShellRecord",
    "ShellRegistry",
    "Tool",
    "ResolvedSecret",
    "SecretMounts",
    "SecretMountSpec",
    "Skill",
    "ToolContext",
    "ToolResult",
]
