"""Tests for the per-conversation state tools."""

import json

import pytest

from toolhost.tools.state_tools import TASK_PLACEHOLDER, StateTools


@pytest.fixture
def state(tmp_path) -> StateTools:
    return StateTools(tmp_path / "state")


class TestTodoWrite:
    """Tests for TodoWrite."""

    @pytest.mark.asyncio
    async def test_todos_persisted_and_rendered(self, state, context):
        """Test that todos are saved and summarized."""
        todos = [
            {"content": "Write parser", "status": "completed"},
            {"content": "Add tests", "status": "in_progress"},
            {"content": "Ship", "status": "pending"},
        ]

        result = await state.handle_todo_write({"todos": todos}, context)

        assert result.result == (
            "Todos updated (1/3 completed):\n\n[x] Write parser\n[>] Add tests\n[ ] Ship"
        )
        saved = json.loads(state.state_path("todos", "conv-1").read_text())
        assert saved == todos

    @pytest.mark.asyncio
    async def test_single_in_progress(self, state, context):
        """Test that two in_progress todos are rejected and nothing is saved."""
        todos = [
            {"content": "a", "status": "in_progress"},
            {"content": "b", "status": "in_progress"},
        ]

        result = await state.handle_todo_write({"todos": todos}, context)

        assert result.error == "Only one todo can be in_progress at a time."
        assert not state.state_path("todos", "conv-1").exists()


class TestTestWrite:
    """Tests for TestWrite."""

    @pytest.mark.asyncio
    async def test_add_then_update(self, state, context):
        """Test adding planned tests and updating one."""
        added = await state.handle_test_write(
            {"action": "add", "tests": [{"description": "parses empty input"}, "junk"]}, context
        )
        saved = json.loads(state.state_path("tests", "conv-1").read_text())
        test_id = saved[0]["id"]

        updated = await state.handle_test_write(
            {"action": "update_status", "testId": test_id, "newStatus": "passing",
             "newFilePath": "tests/test_parser.py"},
            context,
        )
        saved = json.loads(state.state_path("tests", "conv-1").read_text())

        assert added.result == "Added 2 test(s)."
        assert saved[1]["description"] == "(no description)"
        assert updated.result == f"Updated test {test_id}."
        assert saved[0]["status"] == "passing"
        assert saved[0]["filePath"] == "tests/test_parser.py"
        assert saved[1]["status"] == "planned"

    @pytest.mark.asyncio
    async def test_add_requires_tests(self, state, context):
        """Test that add needs a non-empty array."""
        result = await state.handle_test_write({"action": "add", "tests": []}, context)

        assert result.error == "tests array is required for add action."

    @pytest.mark.asyncio
    async def test_unsupported_action(self, state, context):
        """Test unknown actions."""
        result = await state.handle_test_write({"action": "delete"}, context)

        assert result.error == "Unsupported action: delete"


class TestTask:
    """Tests for Task and TaskOutput."""

    @pytest.mark.asyncio
    async def test_task_placeholder_and_output(self, state, context):
        """Test that Task records a placeholder TaskOutput can report."""
        started = await state.handle_task({"description": "refactor"}, context)
        task_id = started.result.split("Task ID: ")[1].split("\n")[0]

        output = await state.handle_task_output({"task_id": task_id}, context)

        assert started.result.startswith("Agent completed.")
        assert output.result.startswith("Task completed.\nDuration: 0ms")
        assert output.result.endswith(TASK_PLACEHOLDER)

    @pytest.mark.asyncio
    async def test_unknown_task(self, state, context):
        """Test TaskOutput for an unknown id."""
        result = await state.handle_task_output({"task_id": "nope"}, context)

        assert result.error == "Task not found: nope"
