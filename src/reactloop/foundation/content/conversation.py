"""Append-only conversation that enforces invocation/result pairing."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from reactloop.foundation.errors import StructuralError

from .models import Message, Role, ToolInvocationRequest


class Conversation:
    """Ordered, append-only sequence of messages owned by one session.

    Append-time checks keep the history well formed:

    - invocation ids are unique across the whole conversation
    - while invocations are pending, only a tool message may follow, and it must answer
      exactly those ids in request order
    - a tool message with nothing pending is rejected

    Example:
        >>> convo = Conversation()
        >>> convo.append(Message.user("hi"))
        >>> len(convo)
        1
    """

    __slots__ = ("_messages", "_seen_ids", "_pending")

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        self._seen_ids: set[str] = set()
        self._pending: tuple[ToolInvocationRequest, ...] = ()
        for message in messages:
            self.append(message)

    def append(self, message: Message) -> None:
        """Append a message, raising StructuralError if it would break pairing."""
        if message.role is Role.TOOL:
            self._check_answers(message)
            self._pending = ()
        elif self._pending:
            ids = ", ".join(i.id for i in self._pending)
            raise StructuralError(f"Cannot append {message.role} message while invocations are pending: {ids}")
        else:
            invocations = message.invocations
            ids = [i.id for i in invocations]
            if len(set(ids)) != len(ids) or self._seen_ids.intersection(ids):
                raise StructuralError(f"Duplicate tool invocation id in {ids}")
            self._seen_ids.update(ids)
            self._pending = invocations
        self._messages.append(message)

    def _check_answers(self, message: Message) -> None:
        if not self._pending:
            raise StructuralError("Tool message appended with no pending invocations")
        expected = [i.id for i in self._pending]
        got = [r.id for r in message.results]
        if got != expected:
            raise StructuralError(f"Tool results {got} do not answer pending invocations {expected}")

    def pending_invocations(self) -> tuple[ToolInvocationRequest, ...]:
        """Invocations in the last assistant message that still lack results."""
        return self._pending

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __repr__(self) -> str:
        return f"Conversation(messages={len(self._messages)}, pending={len(self._pending)})"
