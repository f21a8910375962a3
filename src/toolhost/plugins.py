"""
Local plugin loading.

A plugin is a directory under the plugins root holding a plugin.json:

    {
      "id": "weather",
      "name": "Weather",
      "version": "1.2.0",
      "tools": [
        {"name": "Forecast", "description": "...", "inputSchema": {...},
         "handler": "forecast.py"}
      ]
    }

Each tool's handler is a Python file exposing `handler` or `run`, sync or
async, called with (args, context). Handlers are wrapped so they always
produce a ToolResult, whatever the plugin code does.
"""

import importlib.util
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from toolhost.errors import PluginLoadError
from toolhost.secret_mounts import maybe_await
from toolhost.tools import Tool, ToolHandler
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

MANIFEST_NAME = "plugin.json"
DEFAULT_VERSION = "0.0.0"
HANDLER_ATTRIBUTES = ("handler", "run")


@dataclass
class PluginRecord:
    id: str
    name: str
    version: str
    description: str | None = None
    source: str = "local"


@dataclass
class PluginPayload:
    """Everything discovered under the plugins root."""
    plugins: list[PluginRecord] = field(default_factory=list)
    tools: list[Tool] = field(default_factory=list)

    @property
    def handlers(self) -> dict[str, ToolHandler]:
        return {tool.name: tool.handler for tool in self.tools}

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugins": [vars(plugin) for plugin in self.plugins],
            "tools": [tool.to_schema() for tool in self.tools],
        }


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_schema(raw: Any) -> dict[str, Any]:
    """Force a tool input schema into a top-level object shape."""
    if not isinstance(raw, dict):
        return {"type": "object", "properties": {}, "required": []}
    properties = raw.get("properties") if isinstance(raw.get("properties"), dict) else {}
    required = [key for key in raw.get("required") or [] if isinstance(key, str)]
    return {**raw, "type": "object", "properties": properties, "required": required}


def read_manifest(plugin_dir: Path) -> dict[str, Any] | None:
    try:
        parsed = json.loads((plugin_dir / MANIFEST_NAME).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable plugin manifest in {plugin_dir}: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None


def import_handler(handler_path: Path, module_name: str) -> Callable[..., Any] | None:
    """Import a handler file and return its handler/run callable, if any."""
    spec = importlib.util.spec_from_file_location(module_name, handler_path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Cannot import {handler_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    for attribute in HANDLER_ATTRIBUTES:
        candidate = getattr(module, attribute, None)
        if callable(candidate):
            return candidate
    return None


def wrap_handler(candidate: Callable[..., Any]) -> ToolHandler:
    async def run(args: dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            return ToolResult.coerce(await maybe_await(candidate(args, context)))
        except Exception as e:
            return ToolResult.fail(f"Plugin handler failed: {e}")
    return run


def _static_error(message: str) -> ToolHandler:
    async def run(args: dict[str, Any], context: ToolContext) -> ToolResult:
        return ToolResult.fail(message)
    return run


def load_handler(plugin_dir: Path, handler_path: str, module_name: str) -> ToolHandler | None:
    resolved = (plugin_dir / handler_path).resolve()
    try:
        candidate = import_handler(resolved, module_name)
    except Exception as e:
        logger.error(f"Failed to load plugin handler {resolved}: {e}")
        return _static_error(f"Failed to load handler: {e}")
    if candidate is None:
        logger.warning(f"Plugin handler {resolved} exposes no handler or run callable")
        return None
    return wrap_handler(candidate)


def load_plugins_from_home(plugins_root: str | Path) -> PluginPayload:
    """Scan plugins_root for plugin directories and load their tools."""
    payload = PluginPayload()
    root = Path(plugins_root)
    if not root.is_dir():
        return payload

    for plugin_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        manifest = read_manifest(plugin_dir)
        if manifest is None:
            continue

        plugin_id = _clean(manifest.get("id")) or plugin_dir.name
        description = manifest.get("description")
        payload.plugins.append(PluginRecord(
            id=plugin_id,
            name=_clean(manifest.get("name")) or plugin_id,
            version=_clean(manifest.get("version")) or DEFAULT_VERSION,
            description=description if isinstance(description, str) else None,
        ))

        tool_manifests = manifest.get("tools")
        for entry in tool_manifests if isinstance(tool_manifests, list) else []:
            if not isinstance(entry, dict):
                continue
            name = _clean(entry.get("name"))
            if not name:
                continue

            handler_path = _clean(entry.get("handler"))
            if handler_path:
                module_name = "toolhost_plugin_" + re.sub(r"\W", "_", f"{plugin_id}_{name}")
                handler = load_handler(plugin_dir, handler_path, module_name)
                if handler is None:
                    continue
            else:
                handler = _static_error(f"Tool {name} has no handler.")

            payload.tools.append(Tool(
                name=name,
                description=_clean(entry.get("description")) or f"Plugin tool: {name}",
                handler=handler,
                parameters=normalize_schema(entry.get("inputSchema")),
                source=f"plugin:{plugin_id}",
            ))
            logger.debug(f"Loaded plugin tool {name} from {plugin_id}")

    return payload
