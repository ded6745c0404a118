"""Backend boundary: what the loop sends to the reasoning service and what it expects back."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

from reactloop.foundation.content import Message, TextBlock, ToolDefinition, ToolInvocationRequest
from reactloop.foundation.errors import JsonDict


class StopReason(StrEnum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    ERROR = "error"


@runtime_checkable
class Backend(Protocol):
    """Transport to a reasoning service.

    ``send`` takes the JSON request built by ``encode_request`` and returns the raw JSON
    response. Transient failures should raise exceptions whose ``retryable`` attribute
    is True (``ModelInvocationError(..., retryable=True)``); anything else is fatal unless
    its type or message classifies as a timeout, throttle or network error.
    """

    async def send(self, request: JsonDict) -> JsonDict: ...


class BackendRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    system_prompt: str
    messages: tuple[Message, ...]
    tool_definitions: tuple[ToolDefinition, ...]
    max_tokens: PositiveInt


ResponseBlock = Annotated[Union[TextBlock, ToolInvocationRequest], Field(discriminator="type")]


class BackendResponse(BaseModel):
    """Parsed backend output: ordered blocks plus why generation stopped."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    blocks: tuple[ResponseBlock, ...]
    stop_reason: StopReason

    @property
    def text_blocks(self) -> tuple[TextBlock, ...]:
        return tuple(b for b in self.blocks if isinstance(b, TextBlock))

    @property
    def invocations(self) -> tuple[ToolInvocationRequest, ...]:
        return tuple(b for b in self.blocks if isinstance(b, ToolInvocationRequest))

    @property
    def text(self) -> str:
        return "\n".join(b.value for b in self.text_blocks)
