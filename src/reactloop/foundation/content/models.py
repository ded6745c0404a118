"""Conversation turns and their payload blocks.

A ``Message`` is one turn (user, assistant or tool) holding an ordered tuple of
``ContentBlock``s. Blocks are a tagged union discriminated on ``type``:

- ``TextBlock``: plain text
- ``ToolInvocationRequest``: the backend asking for a tool call
- ``ToolResult``: the orchestrator's answer to one invocation, matched by ``id``
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Self, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reactloop.foundation.errors import ErrorDescriptor, JsonDict, JsonValue

_BLOCK_CONFIG = ConfigDict(frozen=True, extra="forbid")


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TextBlock(BaseModel):
    model_config = _BLOCK_CONFIG

    type: Literal["text"] = "text"
    value: str


class ToolInvocationRequest(BaseModel):
    """A tool call requested by the backend. ``id`` is unique within a session."""

    model_config = _BLOCK_CONFIG

    type: Literal["tool_use"] = "tool_use"
    id: Annotated[str, Field(min_length=1)]
    tool_name: Annotated[str, Field(min_length=1)]
    input: JsonDict = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one invocation: an output, or an error descriptor, never both."""

    model_config = _BLOCK_CONFIG

    type: Literal["tool_result"] = "tool_result"
    id: Annotated[str, Field(min_length=1)]
    output: JsonValue | None = None
    error: ErrorDescriptor | None = None

    @model_validator(mode="after")
    def _output_xor_error(self) -> Self:
        if self.error is not None and self.output is not None:
            raise ValueError("ToolResult carries either output or error, not both")
        return self

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, invocation_id: str, output: JsonValue | None) -> Self:
        return cls(id=invocation_id, output=output)

    @classmethod
    def failure(cls, invocation_id: str, error: ErrorDescriptor) -> Self:
        return cls(id=invocation_id, error=error)


ContentBlock = Annotated[Union[TextBlock, ToolInvocationRequest, ToolResult], Field(discriminator="type")]

# Which block types each role may carry
_ALLOWED_BLOCKS: dict[Role, tuple[type[BaseModel], ...]] = {
    Role.USER: (TextBlock,),
    Role.ASSISTANT: (TextBlock, ToolInvocationRequest),
    Role.TOOL: (ToolResult,),
}


class Message(BaseModel):
    """One conversation turn."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    role: Role
    content: tuple[ContentBlock, ...]

    @model_validator(mode="after")
    def _blocks_match_role(self) -> Self:
        allowed = _ALLOWED_BLOCKS[self.role]
        for block in self.content:
            if not isinstance(block, allowed):
                raise ValueError(f"{self.role} message cannot carry a {block.type} block")
        if self.role is Role.TOOL and not self.content:
            raise ValueError("tool message needs at least one result")
        return self

    @classmethod
    def user(cls, text: str) -> Self:
        return cls(role=Role.USER, content=(TextBlock(value=text),))

    @classmethod
    def assistant(cls, blocks: tuple[TextBlock | ToolInvocationRequest, ...] | list[TextBlock | ToolInvocationRequest]) -> Self:
        return cls(role=Role.ASSISTANT, content=tuple(blocks))

    @classmethod
    def tool(cls, results: tuple[ToolResult, ...] | list[ToolResult]) -> Self:
        return cls(role=Role.TOOL, content=tuple(results))

    @property
    def text(self) -> str:
        """Text blocks joined in order."""
        return "\n".join(b.value for b in self.content if isinstance(b, TextBlock))

    @property
    def invocations(self) -> tuple[ToolInvocationRequest, ...]:
        return tuple(b for b in self.content if isinstance(b, ToolInvocationRequest))

    @property
    def results(self) -> tuple[ToolResult, ...]:
        return tuple(b for b in self.content if isinstance(b, ToolResult))
