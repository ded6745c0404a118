"""Error handling for reactloop.

- ErrorKind/ErrorCode: failure taxonomy and retry classification
- ErrorDescriptor: failure as data (inside ToolResult, on terminal sessions)
- AgentLoopError and subclasses: failures as exceptions
- Result/Ok/Err: failure as a return value
"""

from .errors import (
    TRANSIENT_CODES,
    AgentLoopError,
    DuplicateToolError,
    ErrorCode,
    ErrorDescriptor,
    ErrorKind,
    MaxTurnsExceededError,
    ModelInvocationError,
    SessionStateError,
    StructuralError,
    ToolExecutionError,
    ToolInputError,
    UnknownToolError,
    cancelled_descriptor,
    classify_exception,
)
from .result import Err, Ok, Result
from .types import JsonDict, JsonMapping, JsonPrimitive, JsonValue

__all__ = [
    # Taxonomy
    "ErrorKind", "ErrorCode", "ErrorDescriptor", "TRANSIENT_CODES", "classify_exception", "cancelled_descriptor",
    # Exceptions
    "AgentLoopError", "ToolInputError", "UnknownToolError", "ToolExecutionError", "DuplicateToolError",
    "ModelInvocationError", "StructuralError", "MaxTurnsExceededError", "SessionStateError",
    # Result
    "Result", "Ok", "Err",
    # JSON aliases
    "JsonDict", "JsonMapping", "JsonPrimitive", "JsonValue",
]
