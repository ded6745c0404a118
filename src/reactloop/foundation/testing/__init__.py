"""Testing utilities for code built on the loop."""

from .mock import ScriptedBackend, SleepRecorder, Step, text_response, tool_use_response

__all__ = ["ScriptedBackend", "SleepRecorder", "Step", "text_response", "tool_use_response"]
