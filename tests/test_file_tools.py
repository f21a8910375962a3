"""Tests for the Read, Write and Edit tools."""

import pytest

from toolhost.safety import BLOCKED_PATH_MESSAGE
from toolhost.tools.file_tools import handle_edit, handle_read, handle_write


class TestRead:
    """Tests for handle_read."""

    @pytest.mark.asyncio
    async def test_read_with_line_numbers(self, tmp_path, context):
        """Test that content is returned with a header and numbered lines."""
        path = tmp_path / "notes.txt"
        path.write_text("first\nsecond")

        result = await handle_read({"file_path": str(path)}, context)

        assert result.result == (
            f"File: {path}\nFile has 2 lines. Showing 1-2.\n\n     1\tfirst\n     2\tsecond"
        )

    @pytest.mark.asyncio
    async def test_relative_path_rejected(self, context):
        """Test that relative paths are refused."""
        result = await handle_read({"file_path": "notes.txt"}, context)

        assert result.error == "file_path must be absolute. Received: notes.txt"

    @pytest.mark.asyncio
    async def test_system_path_blocked(self, context):
        """Test that system files are refused."""
        result = await handle_read({"file_path": "/etc/passwd"}, context)

        assert result.error == BLOCKED_PATH_MESSAGE

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path, context):
        """Test reading a file that does not exist."""
        result = await handle_read({"file_path": str(tmp_path / "nope.txt")}, context)

        assert result.error.startswith("File not found:")

    @pytest.mark.asyncio
    async def test_directory_rejected(self, tmp_path, context):
        """Test that directories are not read."""
        result = await handle_read({"file_path": str(tmp_path)}, context)

        assert result.error.startswith("Path is a directory")


class TestWrite:
    """Tests for handle_write."""

    @pytest.mark.asyncio
    async def test_write_creates_parents(self, tmp_path, context):
        """Test writing into a new directory."""
        path = tmp_path / "a" / "b" / "out.txt"

        result = await handle_write({"file_path": str(path), "content": "x\ny"}, context)

        assert path.read_text() == "x\ny"
        assert result.result == f"Wrote 3 characters (2 lines) to {path}"

    @pytest.mark.asyncio
    async def test_write_to_system_path_blocked(self, context):
        """Test that system directories are never written."""
        result = await handle_write({"file_path": "/usr/local/evil.sh", "content": "x"}, context)

        assert result.error == BLOCKED_PATH_MESSAGE


class TestEdit:
    """Tests for handle_edit."""

    @pytest.mark.asyncio
    async def test_single_replacement(self, tmp_path, context):
        """Test replacing a unique string."""
        path = tmp_path / "app.py"
        path.write_text("debug = False\n")

        result = await handle_edit(
            {"file_path": str(path), "old_string": "False", "new_string": "True"}, context
        )

        assert path.read_text() == "debug = True\n"
        assert result.result == f"Replaced 1 occurrence(s) in {path}"

    @pytest.mark.asyncio
    async def test_ambiguous_replacement_refused(self, tmp_path, context):
        """Test that multiple matches need replace_all."""
        path = tmp_path / "app.py"
        path.write_text("a = 1\nb = 1\n")

        result = await handle_edit(
            {"file_path": str(path), "old_string": "1", "new_string": "2"}, context
        )

        assert result.error == (
            "old_string appears 2 times. Provide more context or set replace_all=true."
        )
        assert path.read_text() == "a = 1\nb = 1\n"

    @pytest.mark.asyncio
    async def test_replace_all(self, tmp_path, context):
        """Test replacing every occurrence."""
        path = tmp_path / "app.py"
        path.write_text("a = 1\nb = 1\n")

        result = await handle_edit(
            {"file_path": str(path), "old_string": "1", "new_string": "2", "replace_all": True},
            context,
        )

        assert path.read_text() == "a = 2\nb = 2\n"
        assert result.result == f"Replaced 2 occurrence(s) in {path}"

    @pytest.mark.asyncio
    async def test_not_found(self, tmp_path, context):
        """Test a missing old_string."""
        path = tmp_path / "app.py"
        path.write_text("x")

        result = await handle_edit(
            {"file_path": str(path), "old_string": "y", "new_string": "z"}, context
        )

        assert result.error == "old_string not found in file."
