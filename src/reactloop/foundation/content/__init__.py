"""Content model: turns, payload blocks, the conversation and tool definitions."""

from .conversation import Conversation
from .definition import ToolDefinition, format_validation_error, validate_tool_input
from .models import ContentBlock, Message, Role, TextBlock, ToolInvocationRequest, ToolResult

__all__ = [
    "ContentBlock",
    "Conversation",
    "Message",
    "Role",
    "TextBlock",
    "ToolDefinition",
    "ToolInvocationRequest",
    "ToolResult",
    "format_validation_error",
    "validate_tool_input",
]
