"""
State tools: TodoWrite, TestWrite, Task, TaskOutput.

Todos and planned tests are persisted per conversation as JSON files
under the host's state root. Task delegation happens on the server, so
Task only records a placeholder that TaskOutput can report on.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from toolhost.config import truncate
from toolhost.tools import Tool, schema, str_arg
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

TASK_PLACEHOLDER = (
    "Task delegation is handled server-side. This device should not receive Task requests."
)

_TODO_ICONS = {"completed": "[x]", "in_progress": "[>]"}


@dataclass
class TaskRecord:
    id: str
    description: str
    status: str
    started_at: float
    completed_at: float | None = None
    result: str | None = None
    error: str | None = None


def load_json(path: Path, fallback: Any) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return fallback


def save_json(path: Path, value: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(value, indent=2), encoding="utf-8")


class StateTools:
    """Handlers backed by the per-conversation state directory."""

    def __init__(self, state_root: Path):
        self.state_root = Path(state_root)
        self.tasks: dict[str, TaskRecord] = {}

    def state_path(self, kind: str, conversation_id: str) -> Path:
        return self.state_root / kind / f"{conversation_id}.json"

    async def handle_todo_write(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        todos = args.get("todos")
        if not isinstance(todos, list):
            todos = []
        in_progress = [t for t in todos if isinstance(t, dict) and t.get("status") == "in_progress"]
        if len(in_progress) > 1:
            return ToolResult.fail("Only one todo can be in_progress at a time.")

        save_json(self.state_path("todos", context.conversation_id), todos)

        completed = sum(1 for t in todos if isinstance(t, dict) and t.get("status") == "completed")
        lines = []
        for todo in todos:
            if not isinstance(todo, dict):
                lines.append("- Invalid todo")
                continue
            icon = _TODO_ICONS.get(todo.get("status", ""), "[ ]")
            lines.append(f"{icon} {todo.get('content') or '(no content)'}")
        return ToolResult.ok(
            f"Todos updated ({completed}/{len(todos)} completed):\n\n" + "\n".join(lines)
        )

    async def handle_test_write(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        action = str_arg(args, "action")
        path = self.state_path("tests", context.conversation_id)
        current = load_json(path, [])

        if action == "add":
            tests = args.get("tests")
            if not isinstance(tests, list) or not tests:
                return ToolResult.fail("tests array is required for add action.")
            added = []
            for test in tests:
                record = test if isinstance(test, dict) else {}
                added.append({
                    "id": str(uuid.uuid4()),
                    "description": record.get("description") or "(no description)",
                    "filePath": record.get("filePath"),
                    "status": record.get("status") or "planned",
                    "acceptanceCriteria": record.get("acceptanceCriteria"),
                })
            save_json(path, current + added)
            return ToolResult.ok(f"Added {len(added)} test(s).")

        if action == "update_status":
            test_id = str_arg(args, "testId")
            new_status = str_arg(args, "newStatus")
            new_file_path = str_arg(args, "newFilePath")
            for test in current:
                if test.get("id") != test_id:
                    continue
                if new_status:
                    test["status"] = new_status
                if new_file_path:
                    test["filePath"] = new_file_path
            save_json(path, current)
            return ToolResult.ok(f"Updated test {test_id or '(unknown)'}.")

        return ToolResult.fail(f"Unsupported action: {action}")

    async def handle_task(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        now = time.time()
        record = TaskRecord(
            id=str(uuid.uuid4()),
            description=str_arg(args, "description", "Task"),
            status="completed",
            started_at=now,
            completed_at=now,
            result=TASK_PLACEHOLDER,
        )
        self.tasks[record.id] = record
        logger.info(f"Task request on device for conversation {context.conversation_id}")
        return ToolResult.ok(
            f"Agent completed.\nTask ID: {record.id}\n\n--- Agent Result ---\n{record.result}"
        )

    async def handle_task_output(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        task_id = str_arg(args, "task_id")
        record = self.tasks.get(task_id)
        if record is None:
            return ToolResult.fail(f"Task not found: {task_id}")

        if record.status in ("completed", "error"):
            duration_ms = int(((record.completed_at or time.time()) - record.started_at) * 1000)
            if record.status == "completed":
                return ToolResult.ok(
                    f"Task completed.\nDuration: {duration_ms}ms\n\n"
                    f"--- Result ---\n{truncate(record.result or '')}"
                )
            return ToolResult.ok(
                f"Task failed.\nDuration: {duration_ms}ms\n\n"
                f"--- Error ---\n{truncate(record.error or '')}"
            )
        elapsed_ms = int((time.time() - record.started_at) * 1000)
        return ToolResult.ok(f"Task still running.\nTask ID: {task_id}\nElapsed: {elapsed_ms}ms")

    def tools(self) -> list[Tool]:
        return [
            Tool(
                name="TodoWrite",
                description="Replace the conversation's todo list.",
                handler=self.handle_todo_write,
                parameters=schema({"todos": {"type": "array"}}, ["todos"]),
            ),
            Tool(
                name="TestWrite",
                description="Add planned tests or update their status.",
                handler=self.handle_test_write,
                parameters=schema(
                    {
                        "action": {"type": "string", "enum": ["add", "update_status"]},
                        "tests": {"type": "array"},
                        "testId": {"type": "string"},
                        "newStatus": {"type": "string"},
                        "newFilePath": {"type": "string"},
                    },
                    ["action"],
                ),
            ),
            Tool(
                name="Task",
                description="Delegate a task to a sub-agent.",
                handler=self.handle_task,
                parameters=schema({"description": {"type": "string"}}),
            ),
            Tool(
                name="TaskOutput",
                description="Get the output of a delegated task.",
                handler=self.handle_task_output,
                parameters=schema({"task_id": {"type": "string"}}, ["task_id"]),
            ),
        ]
