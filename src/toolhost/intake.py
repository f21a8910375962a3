"""
Request intake for one device.

Tool-call requests arrive from the orchestrator, possibly more than once
(subscription replays, reconnects). RequestIntake deduplicates them by
request id and runs them one at a time in arrival order on a single
worker, reporting each result back through the orchestrator client.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from toolhost.redaction import preview
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

TOOL_REQUEST = "tool_request"


@dataclass
class ToolRequest:
    """A tool_request event addressed to this device."""
    request_id: str
    conversation_id: str
    tool_name: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    agent_type: str | None = None
    target_device_id: str | None = None
    type: str = TOOL_REQUEST

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolRequest":
        """Create from the transport event shape (camelCase keys, payload envelope)."""
        payload = data.get("payload") or {}
        args = payload.get("args")
        return cls(
            request_id=str(data.get("requestId") or ""),
            conversation_id=str(data.get("conversationId") or ""),
            tool_name=payload.get("toolName") or None,
            args=args if isinstance(args, dict) else {},
            agent_type=payload.get("agentType"),
            target_device_id=data.get("targetDeviceId"),
            type=str(data.get("type") or ""),
        )


class OrchestratorClient(Protocol):
    """The remote side that delivers requests and stores results."""

    async def get_tool_result(self, request_id: str, device_id: str) -> Any: ...

    async def append_tool_result(self, request: ToolRequest, result: ToolResult) -> None: ...


class ToolExecutor(Protocol):
    async def execute_tool(
        self, name: str, args: dict[str, Any], context: ToolContext
    ) -> ToolResult: ...


class RequestIntake:
    """Serializes and deduplicates tool requests for one device."""

    def __init__(self, device_id: str, dispatcher: ToolExecutor, orchestrator: OrchestratorClient):
        self.device_id = device_id
        self.dispatcher = dispatcher
        self.orchestrator = orchestrator
        self.processed: set[str] = set()
        self.in_flight: set[str] = set()
        self._queue: asyncio.Queue[ToolRequest] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    def start(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        logger.info(f"Starting request intake for device {self.device_id}")
        self._worker = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def submit(self, request: ToolRequest) -> None:
        self._queue.put_nowait(request)

    def submit_page(self, requests: Iterable[ToolRequest]) -> None:
        """Queue a batch of requests, as delivered by one subscription update."""
        for request in requests:
            self.submit(request)

    async def join(self) -> None:
        """Wait until every queued request has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self.handle(request)
            except Exception as e:
                logger.error(f"Failed to report result for {request.request_id}: {e}")
            finally:
                self._queue.task_done()

    async def handle(self, request: ToolRequest) -> None:
        """Execute one request unless it was seen before, and report the result."""
        if request.type != TOOL_REQUEST or not request.request_id:
            return
        request_id = request.request_id
        if request_id in self.processed or request_id in self.in_flight:
            return

        logger.info(f"Received tool request {request_id}: {request.tool_name}")
        self.in_flight.add(request_id)
        try:
            existing = await self.orchestrator.get_tool_result(request_id, self.device_id)
            if existing:
                logger.info(f"Tool request {request_id} already processed, skipping")
                self.processed.add(request_id)
                return

            if not request.tool_name:
                logger.error(f"Tool request {request_id} missing toolName")
                await self.orchestrator.append_tool_result(
                    request, ToolResult.fail("toolName missing on request.")
                )
                self.processed.add(request_id)
                return

            context = ToolContext(
                conversation_id=request.conversation_id,
                device_id=self.device_id,
                request_id=request_id,
                agent_type=request.agent_type,
            )
            result = await self.dispatcher.execute_tool(request.tool_name, request.args, context)
            await self.orchestrator.append_tool_result(request, result)
            self.processed.add(request_id)
        except Exception as e:
            logger.error(
                f"Tool request {request.tool_name} failed with exception: {preview(str(e))}"
            )
            await self.orchestrator.append_tool_result(
                request, ToolResult.fail(f"Tool execution failed: {e}")
            )
            self.processed.add(request_id)
        finally:
            self.in_flight.discard(request_id)
