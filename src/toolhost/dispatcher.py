"""
Tool Dispatcher - the only way a tool call reaches the machine.

The dispatcher maps tool names to handlers: the built-in groups (shell,
file, search, database, web, state, user) plus plugin tools merged in by
load_plugins(). execute_tool() is total. It always returns a ToolResult,
whatever the handler does, and it logs every call with arguments and
results passed through the redaction filter first.
"""

import logging
import time
from typing import Any

import httpx

from toolhost.config import HostConfig
from toolhost.plugins import PluginPayload, load_plugins_from_home
from toolhost.redaction import preview
from toolhost.safety import validate_skill_content
from toolhost.secret_mounts import CredentialRequester, SecretResolver, SecretStore
from toolhost.shell_registry import ShellRecord, ShellRegistry
from toolhost.tools import Tool
from toolhost.tools.database_tools import database_tools
from toolhost.tools.file_tools import file_tools
from toolhost.tools.search_tools import search_tools
from toolhost.tools.shell_tools import ShellTools
from toolhost.tools.state_tools import StateTools
from toolhost.tools.user_tools import UserTools
from toolhost.tools.web_tools import WebTools
from toolhost.types import Skill, ToolContext, ToolResult

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 500


class ToolDispatcher:
    """
    Registry of the tools this device can execute.

    Built-in tools always win over plugin tools of the same name. The
    shell registry is owned here and shared with the shell tools.
    """

    def __init__(
        self,
        config: HostConfig,
        resolve_secret: SecretStore | None = None,
        request_credential: CredentialRequester | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.shells = ShellRegistry(config.deferred_delete_helper, config.shell_path)
        self.shell_tools = ShellTools(
            self.shells,
            SecretResolver(resolve_secret, request_credential),
            helper_path=config.deferred_delete_helper,
            shell_path=config.shell_path,
        )
        self.state_tools = StateTools(config.state_root)
        self.web_tools = WebTools(http_transport)
        self.user_tools = UserTools(request_credential)

        self._builtin: dict[str, Tool] = {}
        for tool in [
            *self.shell_tools.tools(),
            *file_tools(),
            *search_tools(),
            *database_tools(),
            *self.web_tools.tools(),
            *self.state_tools.tools(),
            *self.user_tools.tools(),
        ]:
            self._builtin[tool.name] = tool
        self._plugins: dict[str, Tool] = {}
        self.plugin_payload = PluginPayload()

    def register(self, tool: Tool) -> None:
        """Register an extra built-in tool."""
        if tool.name in self._builtin:
            logger.warning(f"Overwriting existing tool: {tool.name}")
        self._builtin[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._builtin.get(name) or self._plugins.get(name)

    @property
    def tool_names(self) -> list[str]:
        return sorted({*self._builtin, *self._plugins})

    def get_schemas(self) -> list[dict[str, Any]]:
        return [self.get(name).to_schema() for name in self.tool_names]

    async def execute_tool(
        self, name: str, args: dict[str, Any] | None, context: ToolContext
    ) -> ToolResult:
        """
        Execute a tool call.

        Unknown tools and handler exceptions become error results; nothing
        propagates to the caller.
        """
        args = args or {}
        tool = self.get(name)
        if tool is None:
            logger.warning(f"Unknown tool {name}; available: {', '.join(self.tool_names)}")
            return ToolResult.fail(f"Unknown tool: {name}")

        logger.info(
            f"Executing {name} (request {context.request_id}) args={preview(args, PREVIEW_CHARS)}"
        )
        started = time.monotonic()
        try:
            result = await tool.handler(args, context)
            if not isinstance(result, ToolResult):
                result = ToolResult.coerce(result)
        except Exception as e:
            logger.error(f"Tool {name} failed: {preview(str(e), PREVIEW_CHARS)}")
            result = ToolResult.fail(f"Tool {name} failed: {e}")

        duration_ms = int((time.monotonic() - started) * 1000)
        if result.is_error:
            logger.info(f"{name} error in {duration_ms}ms: {preview(result.error, PREVIEW_CHARS)}")
        else:
            logger.info(f"{name} ok in {duration_ms}ms: {preview(result.result, PREVIEW_CHARS)}")
        return result

    def set_skills(self, skills: list[Skill]) -> list[Skill]:
        """Cache skills for SkillBash, dropping unsafe ones. Returns the rejected skills."""
        accepted, rejected = [], []
        for skill in skills:
            validation = validate_skill_content(skill.markdown)
            if validation.safe:
                accepted.append(skill)
            else:
                logger.warning(f"Rejected skill {skill.id}: {validation.format_issues()}")
                rejected.append(skill)
        self.shell_tools.set_skills(accepted)
        return rejected

    def load_plugins(self) -> PluginPayload:
        """Reload plugin tools from the plugins root, replacing any loaded before."""
        logger.info(f"Loading plugins from {self.config.plugins_root}")
        payload = load_plugins_from_home(self.config.plugins_root)
        self._plugins = {}
        for tool in payload.tools:
            if tool.name in self._builtin:
                logger.warning(f"Plugin tool {tool.name} shadows a built-in tool; ignoring")
                continue
            self._plugins[tool.name] = tool
        logger.info(f"Registered {len(self._plugins)} plugin tool(s)")
        self.plugin_payload = payload
        return payload

    def get_shells(self) -> list[ShellRecord]:
        return self.shells.records()

    def kill_all_shells(self) -> int:
        return self.shells.kill_all()

    def kill_shells_by_port(self, port: int) -> list[str]:
        return self.shells.kill_by_port(port)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self.tool_names)
