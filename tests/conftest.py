"""Shared fixtures for toolhost tests."""

from pathlib import Path

import pytest

from toolhost.config import HostConfig
from toolhost.types import ToolContext

HELPER_SOURCE = """\
import json
import os
import sys

with open(os.environ["HELPER_LOG"], "a", encoding="utf-8") as log:
    log.write(json.dumps(sys.argv[1:]) + "\\n")
"""


@pytest.fixture
def context() -> ToolContext:
    return ToolContext(conversation_id="conv-1", device_id="device-1", request_id="req-1")


@pytest.fixture
def config(tmp_path: Path) -> HostConfig:
    return HostConfig(home=tmp_path / "home")


@pytest.fixture
def recording_helper(tmp_path: Path) -> tuple[Path, Path]:
    """A deferred-delete helper that only records its arguments, one JSON list per line."""
    helper = tmp_path / "helper.py"
    helper.write_text(HELPER_SOURCE, encoding="utf-8")
    return helper, tmp_path / "helper.log"
