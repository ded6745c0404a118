"""Backend Invoker: one reasoning step, with retries, for a session's current state."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable

from reactloop.foundation.errors import AgentLoopError, ModelInvocationError, StructuralError, classify_exception
from reactloop.runtime.observability import get_logger
from reactloop.runtime.retry import RetryPolicy, is_retryable, with_retry

from .base import Backend, BackendRequest, BackendResponse, StopReason
from .codec import decode_response, encode_request

if TYPE_CHECKING:
    from reactloop.runtime.loop import Session

log = get_logger("reactloop.backend")


class BackendInvoker:
    """Builds requests from a session and sends them through ``with_retry``.

    The invoker never mutates the session. It returns the parsed response or raises:

    - ``StructuralError`` when the session has unanswered invocations, or the response
      does not decode
    - ``ModelInvocationError`` when the backend failed fatally, retries ran out, or the
      response itself carries an ``error`` stop
    """

    __slots__ = ("backend", "retry_policy", "max_tokens", "_sleep")

    def __init__(
        self,
        backend: Backend,
        retry_policy: RetryPolicy,
        max_tokens: int,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        self.backend = backend
        self.retry_policy = retry_policy
        self.max_tokens = max_tokens
        self._sleep = sleep

    def build_request(self, session: Session) -> BackendRequest:
        pending = session.conversation.pending_invocations()
        if pending:
            ids = ", ".join(i.id for i in pending)
            raise StructuralError(f"Cannot invoke backend with unanswered tool invocations: {ids}")
        return BackendRequest(
            system_prompt=session.system_prompt,
            messages=session.conversation.messages,
            tool_definitions=session.registry.definitions(),
            max_tokens=self.max_tokens,
        )

    async def invoke(self, session: Session) -> BackendResponse:
        payload = encode_request(self.build_request(session))
        attempts = 0

        async def attempt() -> dict:
            nonlocal attempts
            attempts += 1
            return await self.backend.send(payload)

        result = await with_retry(attempt, self.retry_policy, sleep=self._sleep, name="backend.send")
        if result.is_err():
            raise _as_invocation_error(result.unwrap_err(), attempts)

        response = decode_response(result.unwrap())
        log.debug("backend responded", stop_reason=response.stop_reason.value,
                  blocks=len(response.blocks), attempts=attempts)
        if response.stop_reason is StopReason.ERROR:
            raise ModelInvocationError(f"Backend stopped with an error: {response.text or 'no detail given'}")
        return response


def _as_invocation_error(exc: Exception, attempts: int) -> AgentLoopError:
    if isinstance(exc, StructuralError):
        return exc
    suffix = f" (after {attempts} attempt{'s' if attempts != 1 else ''})"
    if isinstance(exc, AgentLoopError):
        err = ModelInvocationError(f"{exc.message}{suffix}", retryable=exc.retryable, code=exc.code)
    else:
        code = classify_exception(exc)
        message = str(exc) or type(exc).__name__
        err = ModelInvocationError(f"{message}{suffix}", retryable=is_retryable(exc), code=code)
    err.__cause__ = exc
    return err
