"""
Command and path safety guard.

Pure, stateless classifiers consulted before a tool touches the machine:
- is_dangerous_command(): blocklist of destructive shell commands
- is_blocked_path(): system directory guard for file and search tools
- validate_skill_content(): threat scanner for skill markdown

Ordinary rm/rmdir/unlink calls are NOT blocked here. They are routed to
the deferred-delete helper by the protected shell preamble, which moves
targets into a trash area instead of unlinking them. This blocklist only
catches damage the trash cannot undo: wiping root or home in one go,
filesystem-level destruction, fork bombs, and power commands.
"""

import os
import re
import sys
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CommandRule:
    """A dangerous-command pattern and the reason surfaced when it matches."""
    pattern: re.Pattern[str]
    reason: str


def _rule(pattern: str, reason: str) -> CommandRule:
    return CommandRule(re.compile(pattern, re.IGNORECASE), reason)


# Order only decides which reason is reported; any match blocks.
DANGEROUS_COMMAND_RULES: list[CommandRule] = [
    # Root / home wipe
    _rule(r"\brm\s+-[a-zA-Z]*r[a-zA-Z]*f[a-zA-Z]*\s+/(?:\s|$|;|\|)", "rm -rf /"),
    _rule(r"\brm\s+-[a-zA-Z]*f[a-zA-Z]*r[a-zA-Z]*\s+/(?:\s|$|;|\|)", "rm -rf /"),
    _rule(r"\brm\s+-[a-zA-Z]*r[a-zA-Z]*f[a-zA-Z]*\s+~\s*(?:/\s*)?(?:\s|$|;|\|)", "rm -rf ~"),
    _rule(r"\brm\s+-[a-zA-Z]*f[a-zA-Z]*r[a-zA-Z]*\s+~\s*(?:/\s*)?(?:\s|$|;|\|)", "rm -rf ~"),
    # Windows equivalents
    _rule(r"\bdel\s+(?:/[a-z]\s+)*[a-z]:\\?(?:\s|$|;|\|)", "del drive root"),
    _rule(r"\b(?:rd|rmdir)\s+(?:/[a-z]\s+)*[a-z]:\\?(?:\s|$|;|\|)", "rd drive root"),
    # Drive-level destruction
    _rule(r"\bformat\s+[a-zA-Z]:\s*", "format drive"),
    _rule(r"\bdd\s+if=", "dd if= (raw disk write)"),
    _rule(r"\bmkfs\b", "mkfs (format filesystem)"),
    # Fork bomb
    _rule(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "fork bomb"),
    # System power
    _rule(r"\bshutdown\b", "shutdown"),
    _rule(r"\breboot\b", "reboot"),
]


def is_dangerous_command(command: str) -> str | None:
    """
    Check a command string against the destructive-command blocklist.

    Returns None if the command is allowed, otherwise the reason of the
    first matching rule.
    """
    for rule in DANGEROUS_COMMAND_RULES:
        if rule.pattern.search(command):
            return rule.reason
    return None


BLOCKED_PATH_MESSAGE = (
    "Path blocked: file operations in system directories are not allowed for safety."
)

_UNIX_SYSTEM_PREFIXES = ["/etc", "/usr", "/bin", "/sbin", "/boot", "/sys", "/proc"]
_WINDOWS_SYSTEM_PREFIXES = [
    "c:/windows",
    "c:/windows/system32",
    "c:/program files",
    "c:/program files (x86)",
]


def blocked_path_prefixes(platform: str | None = None) -> list[str]:
    """System directory prefixes, lower-case with forward slashes."""
    platform = platform or sys.platform
    prefixes = list(_UNIX_SYSTEM_PREFIXES)
    if platform == "win32":
        prefixes.extend(_WINDOWS_SYSTEM_PREFIXES)
    return prefixes


def normalize_path(path: str) -> str:
    """Expand ~, resolve to absolute, lower-case, forward slashes."""
    expanded = os.path.expanduser(path) if path.startswith("~") else path
    resolved = os.path.abspath(expanded)
    return resolved.replace("\\", "/").lower()


def is_blocked_path(path: str, platform: str | None = None) -> str | None:
    """
    Check whether a path targets a system directory.

    A path is blocked when it equals a prefix or lives under it. Returns
    None if allowed, otherwise the error message for the caller.
    """
    normalized = normalize_path(path)
    for prefix in blocked_path_prefixes(platform):
        if normalized == prefix or normalized.startswith(prefix + "/"):
            return BLOCKED_PATH_MESSAGE
    return None


@dataclass(frozen=True)
class SkillIssue:
    """One unsafe pattern found in skill content."""
    category: str
    description: str


@dataclass
class SkillValidation:
    """Outcome of scanning a skill definition."""
    safe: bool
    issues: list[SkillIssue] = field(default_factory=list)

    def format_issues(self) -> str:
        return "; ".join(f"{i.category}: {i.description}" for i in self.issues)


@dataclass(frozen=True)
class SkillRule:
    pattern: re.Pattern[str]
    category: str
    description: str


def _skill_rule(pattern: str, category: str, description: str) -> SkillRule:
    return SkillRule(re.compile(pattern, re.IGNORECASE), category, description)


CODE_BLOCK_PLACEHOLDER = "[CODE_BLOCK]"
_FENCED_CODE_RE = re.compile(r"```[\s\S]*?```")

UNSAFE_SKILL_RULES: list[SkillRule] = [
    # Shell injection outside code blocks
    _skill_rule(r"`[^`]*(?:curl|wget|nc|ncat)\s+[^`]*`",
                "shell_injection", "Backtick command with network tool"),
    _skill_rule(r"\$\([^)]*(?:curl|wget|nc|ncat)\s+[^)]*\)",
                "shell_injection", "Command substitution with network tool"),
    # Credential exfiltration
    _skill_rule(r"\bcurl\b[^;\n]*\$[A-Z_]*(?:SECRET|KEY|TOKEN|PASSWORD|CREDENTIAL)\b",
                "credential_exfiltration", "curl with credential variable"),
    _skill_rule(r"\becho\b[^;\n]*\$[A-Z_]*(?:API_KEY|SECRET|TOKEN|PASSWORD)\b",
                "credential_exfiltration", "echo of credential variable"),
    _skill_rule(r"\bsend\b[^;\n]*\bcredentials?\b",
                "credential_exfiltration", "sending credentials"),
    _skill_rule(r"\bexfiltrate\b",
                "credential_exfiltration", "exfiltration keyword"),
    _skill_rule(r"\bbase64\s+encode\b[^;\n]*\bkey\b",
                "credential_exfiltration", "base64 encoding a key"),
    # Prompt override
    _skill_rule(r"\bignore\s+previous\s+instructions\b",
                "prompt_override", "ignore previous instructions"),
    _skill_rule(r"\bignore\s+all\s+prior\b",
                "prompt_override", "ignore all prior instructions"),
    _skill_rule(r"\byou\s+are\s+now\b",
                "prompt_override", "identity override attempt"),
    _skill_rule(r"\bnew\s+system\s+prompt\b",
                "prompt_override", "system prompt injection"),
    _skill_rule(r"\bdisregard\s+your\s+instructions\b",
                "prompt_override", "disregard instructions"),
    # Known exfiltration relays
    _skill_rule(r"\bwebhook\.site\b", "exfiltration_url", "webhook.site URL"),
    _skill_rule(r"\brequestbin\b", "exfiltration_url", "requestbin URL"),
    _skill_rule(r"\bngrok\.io\b", "exfiltration_url", "ngrok.io URL"),
    _skill_rule(r"\bburpcollaborator\b", "exfiltration_url", "burpcollaborator URL"),
]


def strip_code_blocks(content: str) -> str:
    """Replace fenced code blocks so documented examples are not flagged."""
    return _FENCED_CODE_RE.sub(CODE_BLOCK_PLACEHOLDER, content)


def validate_skill_content(content: str) -> SkillValidation:
    """
    Scan skill markdown for unsafe patterns.

    Every rule is evaluated; the content is safe only when none match.
    Inline backticks and $() outside fenced blocks are still checked.
    """
    stripped = strip_code_blocks(content)
    issues = [
        SkillIssue(rule.category, rule.description)
        for rule in UNSAFE_SKILL_RULES
        if rule.pattern.search(stripped)
    ]
    return SkillValidation(safe=not issues, issues=issues)
