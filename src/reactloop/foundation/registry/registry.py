"""Registry mapping tool names to validated, executable capabilities.

The registry provides:
- Registration by name (duplicates rejected)
- The definition list the backend sees, and a prompt-ready description
- ``dispatch``: lookup, schema validation, bounded-time execution, and conversion of
  every failure into a ``ToolResult`` error so the loop can always carry on

Registration happens before sessions start; after that the registry is only read,
so one instance can be shared by any number of concurrent sessions.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

import orjson
from pydantic import BaseModel

from reactloop.foundation.content import ToolDefinition, ToolInvocationRequest, ToolResult, validate_tool_input
from reactloop.foundation.errors import (
    AgentLoopError,
    DuplicateToolError,
    ErrorCode,
    ErrorDescriptor,
    ErrorKind,
    JsonValue,
    Result,
    ToolExecutionError,
    ToolInputError,
    UnknownToolError,
)
from reactloop.runtime.concurrency import to_thread
from reactloop.runtime.observability import get_logger

if TYPE_CHECKING:
    from reactloop.foundation.core import FunctionTool

# Receives the validated input model. Sync or async. Returns an output value,
# Ok(output)/Err(ErrorDescriptor), or an ErrorDescriptor.
ToolHandler = Callable[[BaseModel], Any]

log = get_logger("reactloop.registry")


@dataclass(frozen=True, slots=True)
class RegisteredTool:
    definition: ToolDefinition
    handler: ToolHandler
    timeout: float | None = None


class ToolRegistry:
    """Central registry of tools available to a session.

    Example:
        >>> registry = ToolRegistry(default_timeout=10.0)
        >>> registry.register(definition, handler)
        >>> result = await registry.dispatch(ToolInvocationRequest(id="a", tool_name="check_order_status", input={"order_id": "42"}))
        >>> result.output
        {'status': 'shipped'}
    """

    __slots__ = ("_tools", "_default_timeout", "_dispatch_counts")

    def __init__(self, *, default_timeout: float = 30.0) -> None:
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self._tools: dict[str, RegisteredTool] = {}
        self._default_timeout = default_timeout
        self._dispatch_counts: Counter[str] = Counter()

    def register(self, definition: ToolDefinition, handler: ToolHandler, *, timeout: float | None = None) -> None:
        """Bind a definition to its handler.

        Args:
            definition: Immutable tool definition
            handler: Callable receiving the validated input model
            timeout: Per-tool execution bound, overriding any dispatch-time timeout

        Raises:
            DuplicateToolError: If the name is already registered
        """
        name = definition.name
        if name in self._tools:
            raise DuplicateToolError(f"Tool '{name}' already registered")
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Tool '{name}' timeout must be positive")
        self._tools[name] = RegisteredTool(definition, handler, timeout)
        log.debug("tool registered", tool=name)

    def register_tool(self, tool: FunctionTool) -> None:
        """Register a tool built with the ``@tool`` decorator."""
        self.register(tool.definition, tool.handler, timeout=tool.timeout)

    def register_all(self, *tools: FunctionTool) -> None:
        for t in tools:
            self.register_tool(t)

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def definitions(self) -> tuple[ToolDefinition, ...]:
        """Every definition, in registration order."""
        return tuple(t.definition for t in self._tools.values())

    def describe(self) -> str:
        """Formatted tool list for system prompts."""
        return "\n".join(f"- **{d.name}**: {d.description}" for d in self.definitions())

    @property
    def dispatch_counts(self) -> dict[str, int]:
        return dict(self._dispatch_counts)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self.definitions())

    # ─────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────

    async def dispatch(self, invocation: ToolInvocationRequest, *, timeout: float | None = None) -> ToolResult:
        """Execute one invocation and describe the outcome as a ToolResult.

        Never raises across this boundary except ``asyncio.CancelledError``: unknown tools,
        invalid input, handler exceptions, timeouts and handlers that cancel themselves all
        come back as ``ToolResult.error``.
        """
        name, inv_id = invocation.tool_name, invocation.id
        self._dispatch_counts[name] += 1
        tool_log = log.bind(tool=name, invocation_id=inv_id)

        if (entry := self._tools.get(name)) is None:
            tool_log.warning("unknown tool requested")
            return ToolResult.failure(inv_id, UnknownToolError(f"No tool named '{name}' is registered").descriptor)

        try:
            params = validate_tool_input(entry.definition, invocation.input)
        except ToolInputError as e:
            tool_log.info("tool input rejected", error=e.message)
            return ToolResult.failure(inv_id, e.descriptor)

        limit = entry.timeout if entry.timeout is not None else (timeout if timeout is not None else self._default_timeout)
        try:
            raw = await asyncio.wait_for(_call(entry.handler, params), timeout=limit)
        except TimeoutError:
            tool_log.warning("tool timed out", timeout=limit)
            err = ToolExecutionError(f"Tool '{name}' timed out after {limit}s", retryable=True, code=ErrorCode.TIMEOUT)
            return ToolResult.failure(inv_id, err.descriptor)
        except asyncio.CancelledError:
            # A handler cancelling itself is a tool failure; caller cancellation propagates
            task = asyncio.current_task()
            if task is None or task.cancelling():
                raise
            tool_log.warning("tool cancelled itself")
            err = ToolExecutionError(f"Tool '{name}' was cancelled before returning a result")
            return ToolResult.failure(inv_id, err.descriptor)
        except AgentLoopError as e:
            tool_log.info("tool raised", error=e.message, kind=e.kind.value)
            return ToolResult.failure(inv_id, e.descriptor)
        except Exception as e:
            tool_log.exception("tool failed", error=str(e))
            return ToolResult.failure(
                inv_id, ErrorDescriptor.from_exception(e, kind=ErrorKind.TOOL_EXECUTION, context=f"Tool '{name}' failed"),
            )

        result = _to_tool_result(inv_id, name, raw)
        tool_log.debug("tool finished", error=result.is_error)
        return result


async def _call(handler: ToolHandler, params: BaseModel) -> object:
    """Await async handlers directly; run sync ones on a worker thread."""
    if inspect.iscoroutinefunction(handler):
        return await handler(params)
    out = await to_thread(handler, params)
    return await out if inspect.isawaitable(out) else out


def _to_tool_result(inv_id: str, name: str, raw: object) -> ToolResult:
    match raw:
        case ErrorDescriptor():
            return ToolResult.failure(inv_id, raw)
        case Result() if raw.is_err():
            err = raw.unwrap_err()
            if isinstance(err, ErrorDescriptor):
                return ToolResult.failure(inv_id, err)
            if isinstance(err, BaseException):
                return ToolResult.failure(inv_id, ErrorDescriptor.from_exception(err, context=f"Tool '{name}' failed"))
            return ToolResult.failure(inv_id, ToolExecutionError(str(err) or f"Tool '{name}' failed").descriptor)
        case Result():
            raw = raw.unwrap()
    try:
        return ToolResult.success(inv_id, _to_json(raw))
    except TypeError as e:
        err = ToolExecutionError(f"Tool '{name}' returned non-serializable output: {e}")
        return ToolResult.failure(inv_id, err.descriptor)


def _to_json(value: object) -> JsonValue:
    """Normalize handler output to plain JSON values (models dumped, tuples to lists)."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return orjson.loads(orjson.dumps(value))
