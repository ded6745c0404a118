"""Session state, loop policy and terminal outcomes.

A ``Session`` is one bounded run of the reasoning loop over a single conversation. The
loop is its only writer; everything else reads it or archives its ``snapshot()``.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt

from reactloop.foundation.content import Conversation, Message
from reactloop.foundation.errors import ErrorDescriptor, cancelled_descriptor
from reactloop.runtime.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reactloop.foundation.registry import ToolRegistry


class SessionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    MAX_TURNS_EXCEEDED = "max_turns_exceeded"


class LoopState(StrEnum):
    """Reasoning loop states. The last three are terminal."""
    INIT = "init"
    AWAITING_BACKEND = "awaiting_backend"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    FAILED = "failed"
    MAX_TURNS_EXCEEDED = "max_turns_exceeded"


_TERMINAL_STATUS: dict[LoopState, SessionStatus] = {
    LoopState.COMPLETED: SessionStatus.COMPLETED,
    LoopState.FAILED: SessionStatus.FAILED,
    LoopState.MAX_TURNS_EXCEEDED: SessionStatus.MAX_TURNS_EXCEEDED,
}


class LoopPolicy(BaseModel):
    """Bounds for one run of the loop. Every field is required.

    Attributes:
        max_turns: Backend round trips allowed per session
        max_tokens: Generation budget sent with each backend request
        tool_timeout: Per-invocation timeout for tools without their own
        max_concurrency: Parallel tool workers per turn (None = one per invocation)
        retry: Backoff for backend calls
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_turns: PositiveInt
    max_tokens: PositiveInt
    tool_timeout: PositiveFloat
    max_concurrency: PositiveInt | None
    retry: RetryPolicy


class Session:
    """Mutable state of one conversation run.

    Create with ``Session.create``; drive with ``ReasoningLoop.run``. After the loop
    leaves ACTIVE the session is finished. Seed a new one from
    ``session.conversation.messages`` to continue the conversation.
    """

    __slots__ = (
        "id", "system_prompt", "registry", "max_turns", "conversation", "created_at",
        "turn_count", "state", "error", "final_text", "_task", "_cancel_requested",
    )

    def __init__(
        self,
        id: str,
        system_prompt: str,
        registry: ToolRegistry,
        max_turns: int,
        conversation: Conversation,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.id = id
        self.system_prompt = system_prompt
        self.registry = registry
        self.max_turns = max_turns
        self.conversation = conversation
        self.created_at = datetime.now(UTC)
        self.turn_count = 0
        self.state = LoopState.INIT
        self.error: ErrorDescriptor | None = None
        self.final_text: str | None = None
        self._task: asyncio.Task[object] | None = None
        self._cancel_requested = False

    @classmethod
    def create(
        cls,
        system_prompt: str,
        registry: ToolRegistry,
        max_turns: int,
        history: Iterable[Message] | None = None,
    ) -> Session:
        """New session with a fresh id, optionally seeded with prior messages."""
        return cls(uuid.uuid4().hex, system_prompt, registry, max_turns, Conversation(history or ()))

    @property
    def status(self) -> SessionStatus:
        return _TERMINAL_STATUS.get(self.state, SessionStatus.ACTIVE)

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATUS

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self.is_terminal

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> bool:
        """Request cancellation. Must be called from the session's event loop thread.

        A running session has its driving task cancelled; the loop then records a
        ``Cancelled`` failure. A session that has not started is failed immediately.

        Returns:
            False if the session had already finished
        """
        if self.is_terminal or self._cancel_requested:
            return False
        self._cancel_requested = True
        if self._task is None:
            self.state = LoopState.FAILED
            self.error = cancelled_descriptor()
        else:
            self._task.cancel()
        return True

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            id=self.id,
            system_prompt=self.system_prompt,
            status=self.status,
            state=self.state,
            turn_count=self.turn_count,
            max_turns=self.max_turns,
            messages=self.conversation.messages,
            error=self.error,
            final_text=self.final_text,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (f"Session(id={self.id!r}, state={self.state.value}, turn_count={self.turn_count}, "
                f"messages={len(self.conversation)})")


class SessionSnapshot(BaseModel):
    """Immutable, JSON-serializable copy of a session for archiving."""

    model_config = ConfigDict(frozen=True)

    id: str
    system_prompt: str
    status: SessionStatus
    state: LoopState
    turn_count: int
    max_turns: int
    messages: tuple[Message, ...]
    error: ErrorDescriptor | None = None
    final_text: str | None = None
    created_at: datetime


# ─────────────────────────────────────────────────────────────────────────────
# Outcomes
# ─────────────────────────────────────────────────────────────────────────────


class Completed(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["completed"] = "completed"
    session_id: str
    final_text: str
    turn_count: int


class Failed(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    session_id: str
    error: ErrorDescriptor
    turn_count: int


class MaxTurnsExceeded(BaseModel):
    """The session used up its turns without a final answer. Not a failure."""

    model_config = ConfigDict(frozen=True)

    status: Literal["max_turns_exceeded"] = "max_turns_exceeded"
    session_id: str
    turn_count: int
    max_turns: int
    error: ErrorDescriptor


Outcome = Annotated[Union[Completed, Failed, MaxTurnsExceeded], Field(discriminator="status")]
