"""
Core types for the tool host.

These are the records that cross module boundaries: the identity of a
tool call, the uniform result every handler returns, and the secret and
skill records consumed by the shell tools.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class ToolContext:
    """
    Identifies a single tool call.

    Used for logging, for scoping secret resolution, and for routing.
    Never mutated once the call has started.
    """
    conversation_id: str
    device_id: str
    request_id: str
    agent_type: str | None = None


@dataclass
class ToolResult:
    """
    The result of executing a tool.

    Exactly one of result/error is meaningful. error is reserved for hard
    failures; a command that exits non-zero or times out still produces a
    result, because the calling agent interprets exit status itself.
    """
    result: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, value: Any) -> "ToolResult":
        return cls(result=value)

    @classmethod
    def fail(cls, message: str) -> "ToolResult":
        return cls(error=message)

    @classmethod
    def coerce(cls, value: Any) -> "ToolResult":
        """Normalize an arbitrary handler return value into a ToolResult."""
        if isinstance(value, ToolResult):
            return value
        if isinstance(value, Mapping) and ("result" in value or "error" in value):
            error = value.get("error")
            if error:
                return cls(error=str(error))
            return cls(result=value.get("result"))
        return cls(result=value)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Wire format: {"result": ...} or {"error": ...}."""
        if self.error is not None:
            return {"error": self.error}
        return {"result": self.result}


@dataclass(frozen=True)
class SecretMountSpec:
    """Declares which credential is needed. Never carries the value."""
    provider: str
    label: str | None = None
    description: str | None = None
    placeholder: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SecretMountSpec":
        return cls(
            provider=str(data.get("provider", "")).strip(),
            label=data.get("label"),
            description=data.get("description"),
            placeholder=data.get("placeholder"),
        )


@dataclass
class SecretMounts:
    """Secret injection required to run a skill's commands."""
    env: dict[str, SecretMountSpec] = field(default_factory=dict)
    files: dict[str, SecretMountSpec] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SecretMounts":
        """Parse the manifest shape {env?: {NAME: spec}, files?: {path: spec}}."""
        env = data.get("env") or {}
        files = data.get("files") or {}
        return cls(
            env={name: SecretMountSpec.from_dict(spec) for name, spec in env.items()},
            files={path: SecretMountSpec.from_dict(spec) for path, spec in files.items()},
        )

    def __bool__(self) -> bool:
        return bool(self.env or self.files)


@dataclass(frozen=True)
class ResolvedSecret:
    """A decrypted secret. Held only in an invocation-scoped cache."""
    secret_id: str
    provider: str
    label: str
    plaintext: str

    def __repr__(self) -> str:
        return (
            f"ResolvedSecret(secret_id={self.secret_id!r}, provider={self.provider!r}, "
            f"label={self.label!r}, plaintext='[REDACTED]')"
        )


@dataclass
class Skill:
    """
    The subset of a skill record the shell tools need.

    Skills are parsed from markdown manifests elsewhere and handed to the
    dispatcher already structured.
    """
    id: str
    file_path: str = ""
    name: str = ""
    markdown: str = ""
    secret_mounts: SecretMounts | None = None

    @property
    def directory(self) -> str | None:
        """Directory containing the skill file, used as the default cwd."""
        if not self.file_path:
            return None
        return str(Path(self.file_path).parent)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Skill":
        """Create from a manifest-sync record (camelCase keys)."""
        mounts = data.get("secretMounts") or data.get("secret_mounts")
        return cls(
            id=str(data.get("id", "")),
            file_path=str(data.get("filePath") or data.get("file_path") or ""),
            name=str(data.get("name", "")),
            markdown=str(data.get("markdown", "")),
            secret_mounts=SecretMounts.from_dict(mounts) if mounts else None,
        )
