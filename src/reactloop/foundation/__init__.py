"""Foundation - Core building blocks for reactloop.

Contains: error taxonomy, content model, tool registry, tool decorator, config, testing.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorKind", "ErrorCode", "ErrorDescriptor", "AgentLoopError", "Result", "Ok", "Err",
    # Content
    "Message", "Role", "TextBlock", "ToolInvocationRequest", "ToolResult", "Conversation",
    "ToolDefinition", "validate_tool_input",
    # Registry
    "ToolRegistry", "ToolHandler",
    # Core
    "tool", "FunctionTool",
    # Config
    "ReactLoopSettings", "get_settings", "clear_settings_cache",
    # Testing
    "ScriptedBackend", "SleepRecorder", "text_response", "tool_use_response",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ErrorKind", "ErrorCode", "ErrorDescriptor", "AgentLoopError", "Result", "Ok", "Err"):
        from . import errors
        return getattr(errors, name)

    if name in ("Message", "Role", "TextBlock", "ToolInvocationRequest", "ToolResult", "Conversation",
                "ToolDefinition", "validate_tool_input"):
        from . import content
        return getattr(content, name)

    if name in ("ToolRegistry", "ToolHandler"):
        from . import registry
        return getattr(registry, name)

    if name in ("tool", "FunctionTool"):
        from . import core
        return getattr(core, name)

    if name in ("ReactLoopSettings", "get_settings", "clear_settings_cache"):
        from . import config
        return getattr(config, name)

    if name in ("ScriptedBackend", "SleepRecorder", "text_response", "tool_use_response"):
        from . import testing
        return getattr(testing, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
