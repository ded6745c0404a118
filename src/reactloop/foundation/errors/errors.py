"""Error taxonomy for the orchestration loop.

Two layers describe a failure:

- ``ErrorDescriptor``: immutable data carried inside a ``ToolResult`` or attached to a
  terminal session. This is what the backend and the caller see.
- ``AgentLoopError`` and subclasses: exceptions raised inside the package. Each one knows
  its ``ErrorKind`` and whether retrying might help, and converts to a descriptor.

``ErrorCode`` is a finer, machine-readable classification (rate limits, timeouts, auth)
used by the Resilience Layer to decide whether a foreign exception is transient.
"""

from __future__ import annotations

import json
import re
import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorKind(StrEnum):
    """Kinds of failure the loop distinguishes."""
    VALIDATION = "ValidationError"
    UNKNOWN_TOOL = "UnknownToolError"
    TOOL_EXECUTION = "ToolExecutionError"
    MODEL_INVOCATION = "ModelInvocationError"
    STRUCTURAL = "StructuralError"
    MAX_TURNS_EXCEEDED = "MaxTurnsExceededError"
    CANCELLED = "Cancelled"


class ErrorCode(StrEnum):
    """Machine-readable failure classification used for retry decisions."""
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_ERROR = "SERVICE_ERROR"
    AUTH_FAILED = "AUTH_FAILED"
    INVALID_REQUEST = "INVALID_REQUEST"
    PARSE_ERROR = "PARSE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"


TRANSIENT_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.RATE_LIMITED,
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.SERVICE_ERROR,
})

# Checked in order; first match wins
_PATTERN_CODES: tuple[tuple[re.Pattern[str], ErrorCode], ...] = tuple(
    (re.compile(pattern), code) for pattern, code in (
        (r"timeout|timed out", ErrorCode.TIMEOUT),
        (r"throttl|\brate[ _-]?limit|too many requests|\b429\b", ErrorCode.RATE_LIMITED),
        (r"connection|network", ErrorCode.NETWORK_ERROR),
        (r"unavailable|overloaded|\b50[234]\b", ErrorCode.SERVICE_ERROR),
        (r"\bauth|unauthori[sz]ed|forbidden|permission", ErrorCode.AUTH_FAILED),
        (r"parse|json|decode", ErrorCode.PARSE_ERROR),
        (r"validation|invalid", ErrorCode.INVALID_REQUEST),
        (r"not ?found", ErrorCode.NOT_FOUND),
    )
)


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    haystack = exc_key.lower()
    for pattern, code in _PATTERN_CODES:
        if pattern.search(haystack):
            return code
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map an exception to an error code.

    Package exceptions report their own code; builtin timeout, connection, decode and
    value/type errors map by type; anything else is matched on its type name and message.
    """
    if isinstance(exc, AgentLoopError) and exc.code is not None:
        return exc.code
    if isinstance(exc, TimeoutError):
        return ErrorCode.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorCode.NETWORK_ERROR
    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError)):
        return ErrorCode.PARSE_ERROR
    if isinstance(exc, (ValueError, TypeError)):
        return ErrorCode.INVALID_REQUEST
    return _classify_cached(f"{type(exc).__name__} {exc}")


class ErrorDescriptor(BaseModel):
    """Structured description of a failure, safe to hand back to the backend.

    Attributes:
        kind: Which part of the taxonomy the failure belongs to
        message: Human-readable explanation
        retryable: Whether repeating the same call might succeed
        code: Optional finer classification
        details: Optional verbose info (stack trace); never sent to the backend
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",  # dumps include the computed is_fatal
        json_schema_extra={
            "title": "Error Descriptor",
            "examples": [{"kind": "UnknownToolError", "message": "No tool named 'refund_order'", "retryable": False}],
        },
    )

    kind: ErrorKind
    message: Annotated[str, Field(min_length=1)]
    retryable: bool = False
    code: ErrorCode | None = None
    details: str | None = Field(default=None, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: object) -> object:
        """Accept exceptions and fall back to the type name for empty messages."""
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def is_fatal(self) -> bool:
        """Whether this error ends a session when it reaches the loop."""
        return self.kind in _FATAL_KINDS

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        kind: ErrorKind = ErrorKind.TOOL_EXECUTION,
        context: str = "",
        include_trace: bool = False,
    ) -> Self:
        """Describe any exception, keeping package exceptions' own classification."""
        if isinstance(exc, AgentLoopError):
            return exc.descriptor  # type: ignore[return-value]
        code = classify_exception(exc)
        message = str(exc) or type(exc).__name__
        return cls(
            kind=kind,
            message=f"{context}: {message}" if context else message,
            retryable=code in TRANSIENT_CODES,
            code=code,
            details="".join(traceback.format_exception(exc)) if include_trace else None,
        )

    def render(self) -> str:
        """Format for the backend's consumption."""
        hint = " (may succeed if retried)" if self.retryable else ""
        return f"{self.kind}: {self.message}{hint}"

    __str__ = render


_FATAL_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.MODEL_INVOCATION,
    ErrorKind.STRUCTURAL,
    ErrorKind.MAX_TURNS_EXCEEDED,
    ErrorKind.CANCELLED,
})


# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────


class AgentLoopError(Exception):
    """Base for all package exceptions. Converts to an ``ErrorDescriptor``."""

    kind: ClassVar[ErrorKind] = ErrorKind.TOOL_EXECUTION
    default_retryable: ClassVar[bool] = False

    def __init__(self, message: str, *, retryable: bool | None = None, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.code = code

    @property
    def descriptor(self) -> ErrorDescriptor:
        return ErrorDescriptor(kind=self.kind, message=self.message or self.kind.value, retryable=self.retryable, code=self.code)

    @classmethod
    def from_descriptor(cls, descriptor: ErrorDescriptor) -> AgentLoopError:
        """Rebuild the matching exception type for a descriptor."""
        exc_type = _KIND_TO_EXCEPTION.get(descriptor.kind, AgentLoopError)
        return exc_type(descriptor.message, retryable=descriptor.retryable, code=descriptor.code)


class ToolInputError(AgentLoopError):
    """Tool input failed its schema. Local to one ToolResult."""
    kind = ErrorKind.VALIDATION


class UnknownToolError(AgentLoopError):
    """The backend asked for a tool the registry does not hold."""
    kind = ErrorKind.UNKNOWN_TOOL


class ToolExecutionError(AgentLoopError):
    """A handler raised, returned garbage, or ran past its timeout."""
    kind = ErrorKind.TOOL_EXECUTION


class DuplicateToolError(AgentLoopError):
    """A tool name was registered twice."""
    kind = ErrorKind.VALIDATION


class ModelInvocationError(AgentLoopError):
    """Calling the reasoning backend failed. ``retryable`` separates throttling from auth."""
    kind = ErrorKind.MODEL_INVOCATION


class StructuralError(AgentLoopError):
    """The backend's response, or the conversation it implies, is malformed."""
    kind = ErrorKind.STRUCTURAL


class MaxTurnsExceededError(AgentLoopError):
    """The session ran out of backend round trips."""
    kind = ErrorKind.MAX_TURNS_EXCEEDED


class SessionStateError(RuntimeError):
    """A terminal or already-running session was handed to the loop again."""


_KIND_TO_EXCEPTION: dict[ErrorKind, type[AgentLoopError]] = {
    ErrorKind.VALIDATION: ToolInputError,
    ErrorKind.UNKNOWN_TOOL: UnknownToolError,
    ErrorKind.TOOL_EXECUTION: ToolExecutionError,
    ErrorKind.MODEL_INVOCATION: ModelInvocationError,
    ErrorKind.STRUCTURAL: StructuralError,
    ErrorKind.MAX_TURNS_EXCEEDED: MaxTurnsExceededError,
}


def cancelled_descriptor(message: str = "Session cancelled by caller") -> ErrorDescriptor:
    return ErrorDescriptor(kind=ErrorKind.CANCELLED, message=message)
