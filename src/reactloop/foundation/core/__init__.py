"""Function-to-tool decorator."""

from .decorator import FunctionTool, tool

__all__ = ["FunctionTool", "tool"]
