"""
toolhost command line.

    toolhost run Bash --args '{"command": "ls"}'
    toolhost check-command "rm -rf /"
    toolhost scan-skill ./skills/deploy/SKILL.md
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

from toolhost.config import HostConfig
from toolhost.dispatcher import ToolDispatcher
from toolhost.safety import is_dangerous_command, validate_skill_content
from toolhost.types import ToolContext

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="toolhost", description="Local tool host")
    parser.add_argument("--log-level", default=None, help="Override TOOLHOST_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Execute a single tool call")
    run_parser.add_argument("tool", help="Tool name, e.g. Bash or Read")
    run_parser.add_argument("--args", default="{}", help="Tool arguments as a JSON object")
    run_parser.add_argument("--conversation-id", default="cli", help="Conversation id for state")
    run_parser.add_argument("--device-id", default="local", help="Device id for the context")

    check_parser = subparsers.add_parser("check-command", help="Check a command against the blocklist")
    check_parser.add_argument("shell_command", help="Command text to check")

    scan_parser = subparsers.add_parser("scan-skill", help="Scan a skill markdown file")
    scan_parser.add_argument("path", help="Path to the skill markdown")

    subparsers.add_parser("list-tools", help="List available tools")
    return parser


async def run_tool(config: HostConfig, tool: str, tool_args: dict, context: ToolContext) -> dict:
    dispatcher = ToolDispatcher(config)
    dispatcher.load_plugins()
    result = await dispatcher.execute_tool(tool, tool_args, context)
    return result.to_dict()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = HostConfig.from_env()
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "run":
        try:
            tool_args = json.loads(args.args)
        except json.JSONDecodeError as e:
            print(f"--args is not valid JSON: {e}", file=sys.stderr)
            return 2
        if not isinstance(tool_args, dict):
            print("--args must be a JSON object", file=sys.stderr)
            return 2
        context = ToolContext(
            conversation_id=args.conversation_id,
            device_id=args.device_id,
            request_id=str(uuid.uuid4()),
        )
        outcome = asyncio.run(run_tool(config, args.tool, tool_args, context))
        print(json.dumps(outcome, indent=2, default=str))
        return 1 if "error" in outcome else 0

    if args.command == "check-command":
        reason = is_dangerous_command(args.shell_command)
        print(f"blocked: {reason}" if reason else "ok")
        return 1 if reason else 0

    if args.command == "scan-skill":
        validation = validate_skill_content(Path(args.path).read_text(encoding="utf-8"))
        if validation.safe:
            print("safe")
            return 0
        for issue in validation.issues:
            print(f"{issue.category}: {issue.description}")
        return 1

    if args.command == "list-tools":
        dispatcher = ToolDispatcher(config)
        dispatcher.load_plugins()
        for name in dispatcher.tool_names:
            print(name)
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
