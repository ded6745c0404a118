"""JSON wire codec for the backend boundary.

Request::

    {"system": str,
     "messages": [{"role": "user|assistant|tool", "content": [block, ...]}, ...],
     "tools": [{"name": str, "description": str, "input_schema": {...}}, ...],
     "max_tokens": int}

Blocks::

    {"type": "text", "text": str}
    {"type": "tool_use", "id": str, "name": str, "input": {...}}
    {"type": "tool_result", "tool_use_id": str, "output": any, "is_error": bool,
     "error": {"kind": str, "message": str, "retryable": bool} | null}

Response::

    {"content": [text | tool_use blocks], "stop_reason": "end_turn|tool_use|max_tokens|error"}
"""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError

from reactloop.foundation.content import ContentBlock, Message, TextBlock, ToolDefinition, ToolInvocationRequest, ToolResult
from reactloop.foundation.errors import JsonDict, StructuralError

from .base import BackendRequest, BackendResponse, StopReason


def encode_block(block: ContentBlock) -> JsonDict:
    match block:
        case TextBlock(value=value):
            return {"type": "text", "text": value}
        case ToolInvocationRequest(id=inv_id, tool_name=name, input=args):
            return {"type": "tool_use", "id": inv_id, "name": name, "input": args}
        case ToolResult(id=inv_id, output=output, error=error):
            return {
                "type": "tool_result",
                "tool_use_id": inv_id,
                "output": output,
                "is_error": error is not None,
                "error": None if error is None else {
                    "kind": error.kind.value, "message": error.message, "retryable": error.retryable,
                },
            }
    raise TypeError(f"Cannot encode block {block!r}")


def encode_message(message: Message) -> JsonDict:
    return {"role": message.role.value, "content": [encode_block(b) for b in message.content]}


def encode_tool(definition: ToolDefinition) -> JsonDict:
    return {"name": definition.name, "description": definition.description, "input_schema": definition.json_schema()}


def encode_request(request: BackendRequest) -> JsonDict:
    return {
        "system": request.system_prompt,
        "messages": [encode_message(m) for m in request.messages],
        "tools": [encode_tool(d) for d in request.tool_definitions],
        "max_tokens": request.max_tokens,
    }


def _decode_block(raw: object, index: int) -> TextBlock | ToolInvocationRequest:
    if not isinstance(raw, dict):
        raise StructuralError(f"content[{index}] is not an object")
    match raw.get("type"):
        case "text":
            text = raw.get("text")
            if not isinstance(text, str):
                raise StructuralError(f"content[{index}] text block has no 'text' string")
            return TextBlock(value=text)
        case "tool_use":
            inv_id, name, args = raw.get("id"), raw.get("name"), raw.get("input", {})
            if not isinstance(inv_id, str) or not inv_id or not isinstance(name, str) or not name:
                raise StructuralError(f"content[{index}] tool_use block needs non-empty 'id' and 'name'")
            if not isinstance(args, dict):
                raise StructuralError(f"content[{index}] tool_use input must be an object")
            return ToolInvocationRequest(id=inv_id, tool_name=name, input=args)
        case other:
            raise StructuralError(f"content[{index}] has unsupported block type {other!r}")


def decode_response(raw: object) -> BackendResponse:
    """Parse a raw backend response.

    Raises:
        StructuralError: On any deviation from the wire shape
    """
    if not isinstance(raw, dict):
        raise StructuralError(f"Backend response must be an object, got {type(raw).__name__}")
    try:
        stop_reason = StopReason(raw.get("stop_reason"))
    except ValueError:
        raise StructuralError(f"Unknown stop_reason {raw.get('stop_reason')!r}") from None
    content = raw.get("content")
    if not isinstance(content, list):
        raise StructuralError("Backend response has no 'content' list")
    blocks = tuple(_decode_block(b, i) for i, b in enumerate(content))
    try:
        return BackendResponse(blocks=blocks, stop_reason=stop_reason)
    except PydanticValidationError as e:
        raise StructuralError(f"Backend response failed validation: {e}") from e
