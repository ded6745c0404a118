"""Tool registry: name to validated, executable capability."""

from .registry import RegisteredTool, ToolHandler, ToolRegistry

__all__ = ["RegisteredTool", "ToolHandler", "ToolRegistry"]
