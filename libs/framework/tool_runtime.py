from __future__ import annotations

import asyncio
import inspect
import json
import os
import time
from typing import Any, Dict, List, Optional

from prometheus_client import Counter, Histogram
from pydantic import ValidationError

from libs.core import logging as core_logging
from libs.core.models import ToolInvocation, ToolResult, ToolSpec
from libs.core.tool_registry import ToolHandler, ToolNotFoundError, ToolRegistry, tool_input_type

DEFAULT_TOOL_TIMEOUT_S = 30.0
TIMEOUT_MESSAGE = "Operation timed out"
FALLBACK_ERROR_MESSAGE = "Tool execution failed"
_MAX_LOGGED_STRING = 200

tool_calls_total = Counter(
    "tool_calls_total", "Dispatched tool calls by outcome", ["tool", "status"]
)
tool_call_duration_seconds = Histogram(
    "tool_call_duration_seconds", "Tool call wall time", ["tool"]
)


class ToolTimeoutError(Exception):
    def __init__(self, timeout_s: float) -> None:
        super().__init__(TIMEOUT_MESSAGE)
        self.timeout_s = timeout_s


def resolve_tool_timeout_s() -> float:
    env_timeout = os.getenv("MCP_TOOL_TIMEOUT_S")
    if not env_timeout:
        return DEFAULT_TOOL_TIMEOUT_S
    try:
        value = float(env_timeout)
    except ValueError:
        return DEFAULT_TOOL_TIMEOUT_S
    if value <= 0:
        return DEFAULT_TOOL_TIMEOUT_S
    return value


class ToolGateway:
    """Single entry point turning a tool invocation into a ``ToolResult``.

    Unknown tool names raise ``ToolNotFoundError`` so callers can tell a
    routing mistake apart from a tool that ran and failed. Every other outcome,
    including handler exceptions and timeouts, comes back as an envelope.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        timeout_s: Optional[float] = None,
        logger: Any = None,
    ) -> None:
        self._registry = registry
        self._timeout_s = timeout_s if timeout_s is not None else resolve_tool_timeout_s()
        self._logger = logger or core_logging.get_logger("tool_gateway")

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def list_tools(self) -> List[ToolSpec]:
        return self._registry.list_specs()

    async def dispatch(self, invocation: ToolInvocation) -> ToolResult:
        started_at = time.monotonic()
        name = invocation.name
        arguments = invocation.arguments or {}
        self._logger.info("tool_call_started", tool=name, arguments=sanitize_payload(arguments))

        tool = self._registry.lookup(name)
        if tool is None:
            self._logger.error("tool_not_found", tool=name)
            tool_calls_total.labels(tool="__unknown__", status="not_found").inc()
            raise ToolNotFoundError(name)

        try:
            with core_logging.tool_call_context(name):
                raw_result = await run_with_timeout(tool.handler, arguments, self._timeout_s)
            result = coerce_result(raw_result)
            status = "completed"
        except ToolTimeoutError as exc:
            result = ToolResult.failure(str(exc))
            status = "timeout"
        except Exception as exc:  # noqa: BLE001
            result = ToolResult.failure(str(exc) or FALLBACK_ERROR_MESSAGE)
            status = "failed"

        duration_s = time.monotonic() - started_at
        tool_calls_total.labels(tool=name, status=status).inc()
        tool_call_duration_seconds.labels(tool=name).observe(duration_s)
        if status == "completed":
            self._logger.info(
                "tool_call_completed", tool=name, duration_ms=round(duration_s * 1000)
            )
        else:
            self._logger.error(
                "tool_call_failed",
                tool=name,
                status=status,
                duration_ms=round(duration_s * 1000),
                error=result.first_text(),
            )
        return result


async def run_with_timeout(
    handler: ToolHandler, arguments: tool_input_type, timeout_s: float | None
) -> Any:
    """Race ``handler`` against a timer.

    Coroutine handlers are cancelled when the timer wins. Plain callables run in
    a worker thread, which cannot be interrupted: on timeout the thread keeps
    running to completion in the background and its result is discarded.
    """
    if _is_async_callable(handler):
        call = handler(arguments)
    else:
        call = asyncio.to_thread(handler, arguments)
    if not timeout_s or timeout_s <= 0:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise ToolTimeoutError(timeout_s) from exc


def coerce_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    try:
        return ToolResult.model_validate(value)
    except ValidationError as exc:
        raise ValueError(
            f"Tool returned an invalid result: expected a content list, got {type(value).__name__}"
        ) from exc


def sanitize_payload(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        return {}

    def sanitize(value: Any) -> Any:
        if isinstance(value, str):
            if len(value) > _MAX_LOGGED_STRING:
                return value[:_MAX_LOGGED_STRING] + f"...(+{len(value) - _MAX_LOGGED_STRING} chars)"
            return value
        if isinstance(value, (int, float, bool)) or value is None:
            return value
        if isinstance(value, dict):
            cleaned: Dict[str, Any] = {}
            for key, item in value.items():
                if isinstance(key, str) and key.startswith("_"):
                    continue
                cleaned[key] = sanitize(item)
            return cleaned
        if isinstance(value, list):
            return [sanitize(item) for item in value]
        try:
            json.dumps(value, ensure_ascii=True)
            return value
        except Exception:  # noqa: BLE001
            return str(value)

    return sanitize(payload) or {}


def _is_async_callable(handler: Any) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)
    return inspect.iscoroutinefunction(call)
