"""reactloop - Resilient, tool-invoking reasoning loop.

Repeatedly calls a reasoning backend, runs the tools it asks for, feeds the results
back, and stops on a final answer, a fatal failure, or an exhausted turn budget.

Quick Start:
    >>> from reactloop import ToolRegistry, run_session, tool, get_settings, HttpBackend
    >>>
    >>> @tool(description="Look up the shipping status of an order")
    ... def check_order_status(order_id: str) -> dict:
    ...     return {"status": "shipped"}
    >>>
    >>> registry = ToolRegistry(default_timeout=10.0)
    >>> registry.register_tool(check_order_status)
    >>>
    >>> settings = get_settings()
    >>> async with HttpBackend.from_settings(settings) as backend:
    ...     outcome = await run_session("What is the status of order 42?",
    ...                                 "You are a support agent.", registry,
    ...                                 settings.loop_policy(), backend=backend)
    >>> outcome.status
    'completed'

Explicit registration (schema as a pydantic model):
    >>> class OrderQuery(BaseModel):
    ...     order_id: str
    >>>
    >>> registry.register(
    ...     ToolDefinition(name="check_order_status", description="Order status", input_schema=OrderQuery),
    ...     lambda q: {"status": "shipped"},
    ... )

Driving a session yourself (cancellation, snapshots):
    >>> session = Session.create("You are terse.", registry, max_turns=5)
    >>> task = asyncio.create_task(ReasoningLoop(backend, policy).run(session, "hi"))
    >>> session.cancel()
    >>> (await task).error.kind
    <ErrorKind.CANCELLED: 'Cancelled'>
"""

from reactloop.foundation.config import ReactLoopSettings, clear_settings_cache, get_settings
from reactloop.foundation.content import (
    ContentBlock,
    Conversation,
    Message,
    Role,
    TextBlock,
    ToolDefinition,
    ToolInvocationRequest,
    ToolResult,
    validate_tool_input,
)
from reactloop.foundation.core import FunctionTool, tool
from reactloop.foundation.errors import (
    AgentLoopError,
    DuplicateToolError,
    Err,
    ErrorCode,
    ErrorDescriptor,
    ErrorKind,
    MaxTurnsExceededError,
    ModelInvocationError,
    Ok,
    Result,
    SessionStateError,
    StructuralError,
    ToolExecutionError,
    ToolInputError,
    UnknownToolError,
)
from reactloop.foundation.registry import ToolHandler, ToolRegistry
from reactloop.runtime.backend import Backend, BackendInvoker, BackendRequest, BackendResponse, HttpBackend, StopReason
from reactloop.runtime.loop import (
    Completed,
    Failed,
    LoopPolicy,
    LoopState,
    MaxTurnsExceeded,
    Outcome,
    ReasoningLoop,
    Session,
    SessionSnapshot,
    SessionStatus,
    run_session,
    run_session_sync,
)
from reactloop.runtime.observability import configure_logging, get_logger
from reactloop.runtime.retry import ExponentialBackoff, RetryPolicy, with_retry, with_retry_sync

__version__ = "0.1.0"

__all__ = [
    # Content
    "ContentBlock", "Conversation", "Message", "Role", "TextBlock", "ToolDefinition",
    "ToolInvocationRequest", "ToolResult", "validate_tool_input",
    # Registry
    "ToolHandler", "ToolRegistry", "FunctionTool", "tool",
    # Errors
    "AgentLoopError", "DuplicateToolError", "ErrorCode", "ErrorDescriptor", "ErrorKind",
    "MaxTurnsExceededError", "ModelInvocationError", "SessionStateError", "StructuralError",
    "ToolExecutionError", "ToolInputError", "UnknownToolError", "Result", "Ok", "Err",
    # Retry
    "ExponentialBackoff", "RetryPolicy", "with_retry", "with_retry_sync",
    # Backend
    "Backend", "BackendInvoker", "BackendRequest", "BackendResponse", "HttpBackend", "StopReason",
    # Loop
    "Completed", "Failed", "LoopPolicy", "LoopState", "MaxTurnsExceeded", "Outcome", "ReasoningLoop",
    "Session", "SessionSnapshot", "SessionStatus", "run_session", "run_session_sync",
    # Config / logging
    "ReactLoopSettings", "clear_settings_cache", "get_settings", "configure_logging", "get_logger",
]
