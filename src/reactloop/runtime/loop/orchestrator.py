"""The reasoning loop: invoke the backend, run requested tools, feed results back, repeat.

State machine over a ``Session``::

    INIT -> AWAITING_BACKEND -> (END_TURN) COMPLETED
                    ^      |
                    |      +-> (TOOL_USE) EXECUTING_TOOLS --+
                    +---------------------------------------+
    any awaiting point -> FAILED (invocation, structural, cancelled)
    turn budget spent  -> MAX_TURNS_EXCEEDED

Tool failures never end a session; they are handed back to the backend as
``ToolResult`` errors. Backend failures that survive the retry policy, malformed
responses and cancellation do.

Example:
    >>> policy = get_settings().loop_policy()
    >>> async with HttpBackend.from_settings(get_settings()) as backend:
    ...     outcome = await run_session("Where is order 42?", "You are a support agent.",
    ...                                 registry, policy, backend=backend)
    >>> match outcome:
    ...     case Completed(final_text=text): print(text)
    ...     case Failed(error=err): print(err.render())
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable

from reactloop.foundation.content import Message, ToolInvocationRequest, ToolResult
from reactloop.foundation.errors import (
    AgentLoopError,
    ErrorDescriptor,
    ErrorKind,
    MaxTurnsExceededError,
    ModelInvocationError,
    SessionStateError,
    StructuralError,
    cancelled_descriptor,
)
from reactloop.runtime.backend import Backend, BackendInvoker, BackendResponse, StopReason
from reactloop.runtime.concurrency import map_async, run_sync
from reactloop.runtime.observability import BoundLogger, get_logger

from .session import Completed, Failed, LoopPolicy, LoopState, MaxTurnsExceeded, Session

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reactloop.foundation.registry import ToolRegistry

    from .session import Outcome

_log = get_logger("reactloop.loop")


class ReasoningLoop:
    """Drives sessions against one backend under one policy.

    The loop holds no per-session state, so a single instance can run any number of
    sessions concurrently, each in its own task.

    Args:
        backend: Transport to the reasoning service
        policy: Turn, token, timeout, concurrency and retry bounds
        sleep: Suspension used for retry backoff (injectable for tests)
    """

    __slots__ = ("policy", "_invoker")

    def __init__(
        self,
        backend: Backend,
        policy: LoopPolicy,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._invoker = BackendInvoker(backend, policy.retry, policy.max_tokens, sleep=sleep)

    async def run(self, session: Session, user_message: str) -> Outcome:
        """Run ``session`` to a terminal state, starting from ``user_message``.

        Raises:
            SessionStateError: The session was already started or has finished
            asyncio.CancelledError: The driving task was cancelled by something other
                than ``session.cancel()`` (the session is still marked FAILED)
        """
        if session.state is not LoopState.INIT or session.is_running:
            raise SessionStateError(f"Session {session.id} is {session.state.value}; create a new session")
        session._task = asyncio.current_task()
        log = _log.bind(session_id=session.id)
        log.info("session started", max_turns=session.max_turns, tools=len(session.registry),
                 history=len(session.conversation))
        try:
            return await self._drive(session, user_message, log)
        except asyncio.CancelledError:
            self._finish(session, LoopState.FAILED, log, error=cancelled_descriptor())
            if not session.cancel_requested:
                raise
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            return Failed(session_id=session.id, error=session.error, turn_count=session.turn_count)

    async def _drive(self, session: Session, user_message: str, log: BoundLogger) -> Outcome:
        try:
            session.conversation.append(Message.user(user_message))
            while True:
                if session.turn_count >= session.max_turns:
                    exc = MaxTurnsExceededError(f"Turn budget of {session.max_turns} spent without a final answer")
                    self._finish(session, LoopState.MAX_TURNS_EXCEEDED, log, error=exc.descriptor)
                    return MaxTurnsExceeded(session_id=session.id, turn_count=session.turn_count,
                                            max_turns=session.max_turns, error=exc.descriptor)
                session.turn_count += 1
                session.state = LoopState.AWAITING_BACKEND
                log.debug("invoking backend", turn=session.turn_count, messages=len(session.conversation))
                response = await self._invoker.invoke(session)

                if response.stop_reason is StopReason.END_TURN:
                    session.conversation.append(Message.assistant(response.text_blocks))
                    session.final_text = response.text
                    self._finish(session, LoopState.COMPLETED, log)
                    return Completed(session_id=session.id, final_text=response.text, turn_count=session.turn_count)

                invocations = self._accept_tool_use(session, response)
                session.state = LoopState.EXECUTING_TOOLS
                results = await self._execute(session, invocations, log)
                session.conversation.append(Message.tool(results))
        except AgentLoopError as exc:
            self._finish(session, LoopState.FAILED, log, error=exc.descriptor)
            return Failed(session_id=session.id, error=exc.descriptor, turn_count=session.turn_count)
        except Exception as exc:
            log.exception("unexpected failure in reasoning loop", error=str(exc))
            error = ErrorDescriptor.from_exception(exc, kind=ErrorKind.STRUCTURAL, context="Reasoning loop failed")
            self._finish(session, LoopState.FAILED, log, error=error)
            return Failed(session_id=session.id, error=error, turn_count=session.turn_count)

    def _accept_tool_use(self, session: Session, response: BackendResponse) -> tuple[ToolInvocationRequest, ...]:
        match response.stop_reason:
            case StopReason.TOOL_USE:
                pass
            case StopReason.MAX_TOKENS:
                raise StructuralError(f"Backend hit the {self.policy.max_tokens}-token limit before finishing")
            case StopReason.ERROR:
                raise ModelInvocationError("Backend stopped with an error")
        invocations = response.invocations
        if not invocations:
            raise StructuralError("Backend stopped for tool use without requesting any tool")
        session.conversation.append(Message.assistant(response.blocks))
        return invocations

    async def _execute(
        self,
        session: Session,
        invocations: tuple[ToolInvocationRequest, ...],
        log: BoundLogger,
    ) -> list[ToolResult]:
        registry = session.registry
        timeout = self.policy.tool_timeout

        async def dispatch(invocation: ToolInvocationRequest) -> ToolResult:
            result = await registry.dispatch(invocation, timeout=timeout)
            if result.error is not None:
                log.info("tool failed", tool=invocation.tool_name, invocation_id=invocation.id,
                         kind=result.error.kind.value, error=result.error.message)
            else:
                log.debug("tool succeeded", tool=invocation.tool_name, invocation_id=invocation.id)
            return result

        log.info("executing tools", turn=session.turn_count, tools=[i.tool_name for i in invocations])
        return await map_async(dispatch, invocations, limit=self.policy.max_concurrency)

    @staticmethod
    def _finish(session: Session, state: LoopState, log: BoundLogger, *, error: ErrorDescriptor | None = None) -> None:
        session.state = state
        session.error = error
        if error is None:
            log.info("session finished", status=session.status.value, turns=session.turn_count)
        else:
            log.warning("session finished", status=session.status.value, turns=session.turn_count,
                        kind=error.kind.value, error=error.message)


async def run_session(
    initial_user_message: str,
    system_prompt: str,
    registry: ToolRegistry,
    policy: LoopPolicy,
    *,
    backend: Backend,
    history: Iterable[Message] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> Outcome:
    """Create a session and run it to a terminal outcome."""
    session = Session.create(system_prompt, registry, policy.max_turns, history=history)
    return await ReasoningLoop(backend, policy, sleep=sleep).run(session, initial_user_message)


def run_session_sync(
    initial_user_message: str,
    system_prompt: str,
    registry: ToolRegistry,
    policy: LoopPolicy,
    *,
    backend: Backend,
    history: Iterable[Message] | None = None,
) -> Outcome:
    """Blocking ``run_session`` for scripts and sync call sites."""
    return run_sync(run_session(initial_user_message, system_prompt, registry, policy,
                                backend=backend, history=history))
