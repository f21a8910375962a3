"""
Secret resolution and mounting for skill commands.

A skill declares which credentials its commands need (SecretMounts). At
call time each declared provider is resolved to plaintext and injected,
either as an environment variable or as a short-lived file on disk.

Resolution order for one provider:
1. the invocation-scoped cache
2. the secret store, looked up by provider
3. an interactive credential request, then the store again by secret id

Plaintext is never cached beyond one SecretMountSession, and every file a
session writes is removed by release().
"""

import asyncio
import inspect
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from toolhost.errors import MissingSecretError
from toolhost.paths import expand_home_path
from toolhost.types import ResolvedSecret, SecretMounts, SecretMountSpec, ToolContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretLookup:
    """Query handed to the secret store."""
    provider: str
    secret_id: str | None = None
    request_id: str | None = None
    tool_name: str | None = None
    device_id: str | None = None


@dataclass(frozen=True)
class CredentialRequest:
    """Prompt sent to the user when a provider has no stored secret."""
    provider: str
    label: str
    description: str | None = None
    placeholder: str | None = None


@dataclass(frozen=True)
class CredentialResponse:
    secret_id: str
    provider: str = ""
    label: str = ""


class SecretStore(Protocol):
    async def __call__(self, lookup: SecretLookup) -> ResolvedSecret | None: ...


class CredentialRequester(Protocol):
    async def __call__(self, request: CredentialRequest) -> CredentialResponse: ...


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SecretResolver:
    """Resolves SecretMountSpecs to plaintext through the store collaborators."""

    def __init__(
        self,
        resolve_secret: SecretStore | None = None,
        request_credential: CredentialRequester | None = None,
    ):
        self.resolve_secret = resolve_secret
        self.request_credential = request_credential

    async def resolve(
        self,
        spec: SecretMountSpec,
        cache: dict[str, str],
        context: ToolContext | None = None,
        tool_name: str | None = None,
    ) -> str | None:
        """Return the plaintext for spec.provider, or None if it cannot be found."""
        if spec.provider in cache:
            return cache[spec.provider]
        if self.resolve_secret is None:
            return None

        lookup = SecretLookup(
            provider=spec.provider,
            request_id=context.request_id if context else None,
            tool_name=tool_name,
            device_id=context.device_id if context else None,
        )
        resolved = await maybe_await(self.resolve_secret(lookup))

        if resolved is None and self.request_credential is not None:
            logger.info(f"No stored secret for {spec.provider}, requesting from user")
            response = await maybe_await(self.request_credential(CredentialRequest(
                provider=spec.provider,
                label=spec.label or spec.provider,
                description=spec.description,
                placeholder=spec.placeholder,
            )))
            resolved = await maybe_await(self.resolve_secret(SecretLookup(
                provider=spec.provider,
                secret_id=response.secret_id,
                request_id=lookup.request_id,
                tool_name=tool_name,
                device_id=lookup.device_id,
            )))

        if resolved is None:
            return None
        cache[spec.provider] = resolved.plaintext
        return resolved.plaintext


async def _tighten_windows_acl(path: Path) -> None:
    username = os.environ.get("USERNAME")
    if not username:
        return
    proc = await asyncio.create_subprocess_exec(
        "icacls", str(path), "/inheritance:r", "/grant:r", f"{username}:R",
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    await proc.wait()


async def write_secret_file(file_path: str, value: str, cwd: str) -> Path:
    """
    Write a secret to disk readable only by the current user.

    Relative paths resolve against cwd. Permission hardening is
    best-effort; failing to tighten it does not fail the mount.
    """
    expanded = Path(expand_home_path(file_path))
    resolved = expanded if expanded.is_absolute() else Path(cwd) / expanded
    resolved.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(resolved, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(value)
    # O_CREAT's mode does not apply to a file that already existed
    try:
        os.chmod(resolved, 0o600)
    except OSError as e:
        logger.debug(f"chmod failed for secret file {resolved}: {e}")
    if sys.platform == "win32":
        try:
            await _tighten_windows_acl(resolved)
        except OSError as e:
            logger.debug(f"icacls failed for secret file {resolved}: {e}")
    return resolved


def remove_secret_file(path: str | Path) -> None:
    """Best-effort removal of a mounted secret file."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove secret file {path}: {e}")


@dataclass
class SecretMountSession:
    """
    Secret state for one tool invocation.

    Holds the provider cache, the env overrides to pass to the shell and
    the files written to disk. release() must run on every exit path;
    for background shells it is handed over as the close callback.
    """
    resolver: SecretResolver
    context: ToolContext | None = None
    tool_name: str | None = None
    cache: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    mounted_files: list[Path] = field(default_factory=list)

    async def _require(self, spec: SecretMountSpec) -> str:
        value = await self.resolver.resolve(spec, self.cache, self.context, self.tool_name)
        if not value:
            raise MissingSecretError(spec.provider)
        return value

    async def mount(self, mounts: SecretMounts, cwd: str) -> None:
        """Resolve env mounts then file mounts. Raises MissingSecretError."""
        for env_name, spec in mounts.env.items():
            if not env_name.strip():
                continue
            self.env[env_name] = await self._require(spec)

        for file_path, spec in mounts.files.items():
            if not file_path.strip():
                continue
            value = await self._require(spec)
            self.mounted_files.append(await write_secret_file(file_path, value, cwd))

    def release(self) -> None:
        """Remove every mounted file. Safe to call more than once."""
        while self.mounted_files:
            remove_secret_file(self.mounted_files.pop())
        self.cache.clear()
