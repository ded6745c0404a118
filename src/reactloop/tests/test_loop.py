"""Tests for the reasoning loop state machine and run_session."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel, TypeAdapter

from reactloop.foundation.content import Message, Role, ToolDefinition, ToolResult
from reactloop.foundation.errors import ErrorCode, ErrorKind, ModelInvocationError, SessionStateError
from reactloop.foundation.registry import ToolRegistry
from reactloop.foundation.testing import ScriptedBackend, SleepRecorder, text_response, tool_use_response
from reactloop.runtime.loop import (
    Completed,
    Failed,
    LoopPolicy,
    LoopState,
    MaxTurnsExceeded,
    Outcome,
    ReasoningLoop,
    Session,
    SessionSnapshot,
    SessionStatus,
    run_session,
    run_session_sync,
)
from reactloop.runtime.observability import CaptureRenderer

SYSTEM = "You are a customer support agent."


class Delay(BaseModel):
    seconds: float


def _assert_paired(session: Session) -> None:
    """Every invocation is answered, in order, by the message right after it."""
    messages = session.conversation.messages
    for i, msg in enumerate(messages):
        if msg.invocations:
            assert messages[i + 1].role is Role.TOOL
            assert [r.id for r in messages[i + 1].results] == [inv.id for inv in msg.invocations]


# ═════════════════════════════════════════════════════════════════════════════
# Scenarios
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_order_status_scenario(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    """User asks about order 42; the tool says shipped; the backend answers."""
    backend = ScriptedBackend([
        tool_use_response(("call-1", "check_order_status", {"order_id": "42"})),
        text_response("Your order has shipped."),
    ])
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)

    outcome = await ReasoningLoop(backend, loop_policy, sleep=SleepRecorder()).run(
        session, "What is the status of order 42?",
    )

    assert isinstance(outcome, Completed)
    assert outcome.final_text == "Your order has shipped."
    assert outcome.turn_count == 2
    assert session.status is SessionStatus.COMPLETED
    assert session.final_text == "Your order has shipped."
    assert [m.role for m in session.conversation] == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]

    tool_msg = session.conversation[2]
    assert tool_msg.results == (ToolResult.success("call-1", {"status": "shipped", "order_id": "42"}),)

    second_request = backend.requests[1]["messages"]
    assert second_request[-1]["role"] == "tool"
    assert second_request[-1]["content"][0]["output"] == {"status": "shipped", "order_id": "42"}
    _assert_paired(session)


@pytest.mark.asyncio
async def test_unknown_tool_does_not_end_session(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    backend = ScriptedBackend([
        tool_use_response(("r1", "refund_order", {"order_id": "42"})),
        text_response("I can't issue refunds, but I've noted your request."),
    ])

    outcome = await run_session("Refund order 42", SYSTEM, order_registry, loop_policy,
                                backend=backend, sleep=SleepRecorder())

    assert outcome.status == "completed"
    tool_result = backend.requests[1]["messages"][-1]["content"][0]
    assert tool_result["is_error"] is True
    assert tool_result["error"]["kind"] == "UnknownToolError"


@pytest.mark.asyncio
async def test_invalid_input_and_handler_failure_are_fed_back(loop_policy: LoopPolicy) -> None:
    class OrderId(BaseModel):
        order_id: int

    def broken(q: OrderId) -> None:
        raise RuntimeError("database unavailable")

    registry = ToolRegistry()
    registry.register(ToolDefinition(name="lookup", description="Lookup", input_schema=OrderId), broken)
    backend = ScriptedBackend([
        tool_use_response(("a", "lookup", {"order_id": "not-a-number"}), ("b", "lookup", {"order_id": 7})),
        text_response("Sorry, our systems are down."),
    ])
    session = Session.create(SYSTEM, registry, loop_policy.max_turns)

    outcome = await ReasoningLoop(backend, loop_policy).run(session, "Where is my order?")

    assert isinstance(outcome, Completed)
    a, b = session.conversation[2].results
    assert a.error.kind is ErrorKind.VALIDATION
    assert b.error.kind is ErrorKind.TOOL_EXECUTION
    assert "database unavailable" in b.error.message


@pytest.mark.asyncio
async def test_tool_cancelling_itself_is_fed_back(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    """A handler raising CancelledError is a tool failure, not the end of the session."""

    async def gives_up(q: Delay) -> None:
        raise asyncio.CancelledError()

    order_registry.register(ToolDefinition(name="gives_up", description="Gives up", input_schema=Delay), gives_up)
    backend = ScriptedBackend([
        tool_use_response(("a", "gives_up", {"seconds": 0}), ("b", "check_order_status", {"order_id": "42"})),
        text_response("One lookup failed, but order 42 has shipped."),
    ])
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)

    outcome = await ReasoningLoop(backend, loop_policy).run(session, "go")

    assert isinstance(outcome, Completed)
    assert backend.exhausted
    a, b = session.conversation[2].results
    assert a.error.kind is ErrorKind.TOOL_EXECUTION
    assert b.output == {"status": "shipped", "order_id": "42"}
    _assert_paired(session)


@pytest.mark.asyncio
async def test_concurrent_results_keep_request_order(loop_policy: LoopPolicy) -> None:
    """The first-requested tool finishes last; results still come back [a, b]."""
    finished: list[float] = []

    async def wait(d: Delay) -> float:
        await asyncio.sleep(d.seconds)
        finished.append(d.seconds)
        return d.seconds

    registry = ToolRegistry()
    registry.register(ToolDefinition(name="wait", description="Sleep a while", input_schema=Delay), wait)
    backend = ScriptedBackend([
        tool_use_response(("a", "wait", {"seconds": 0.05}), ("b", "wait", {"seconds": 0.0})),
        text_response("done"),
    ])
    session = Session.create(SYSTEM, registry, loop_policy.max_turns)

    await ReasoningLoop(backend, loop_policy).run(session, "go")

    assert finished == [0.0, 0.05]
    results = session.conversation[2].results
    assert [r.id for r in results] == ["a", "b"]
    assert [r.output for r in results] == [0.05, 0.0]


@pytest.mark.asyncio
async def test_tools_run_concurrently_within_a_turn(loop_policy: LoopPolicy) -> None:
    running = 0
    peak = 0

    async def track(d: Delay) -> None:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(d.seconds)
        running -= 1

    registry = ToolRegistry()
    registry.register(ToolDefinition(name="track", description="Track overlap", input_schema=Delay), track)
    calls = [(f"t{i}", "track", {"seconds": 0.02}) for i in range(4)]

    await run_session("go", SYSTEM, registry, loop_policy,
                      backend=ScriptedBackend([tool_use_response(*calls), text_response("ok")]))
    assert peak == 4

    peak = 0
    limited = loop_policy.model_copy(update={"max_concurrency": 2})
    await run_session("go", SYSTEM, registry, limited,
                      backend=ScriptedBackend([tool_use_response(*calls), text_response("ok")]))
    assert peak == 2


# ═════════════════════════════════════════════════════════════════════════════
# Turn budget
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("max_turns", [1, 2, 3])
async def test_max_turns_stops_on_the_next_would_be_call(order_registry: ToolRegistry, loop_policy: LoopPolicy,
                                                         max_turns: int) -> None:
    """With max_turns=k the backend is called exactly k times."""
    backend = ScriptedBackend([
        tool_use_response((f"call-{n}", "check_order_status", {"order_id": str(n)})) for n in range(max_turns)
    ])
    policy = loop_policy.model_copy(update={"max_turns": max_turns})
    session = Session.create(SYSTEM, order_registry, max_turns)

    outcome = await ReasoningLoop(backend, policy).run(session, "Keep checking")

    assert isinstance(outcome, MaxTurnsExceeded)
    assert backend.call_count == max_turns
    assert outcome.turn_count == max_turns and outcome.max_turns == max_turns
    assert outcome.error.kind is ErrorKind.MAX_TURNS_EXCEEDED
    assert session.status is SessionStatus.MAX_TURNS_EXCEEDED
    assert session.conversation.pending_invocations() == ()
    _assert_paired(session)


@pytest.mark.asyncio
async def test_final_answer_on_last_allowed_turn_completes(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    backend = ScriptedBackend([
        tool_use_response(("a", "check_order_status", {"order_id": "1"})),
        text_response("Shipped."),
    ])
    session = Session.create(SYSTEM, order_registry, max_turns=2)
    outcome = await ReasoningLoop(backend, loop_policy).run(session, "status?")
    assert isinstance(outcome, Completed) and outcome.turn_count == 2


# ═════════════════════════════════════════════════════════════════════════════
# Fatal failures
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_throttled_three_times_fails_session(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    sleep = SleepRecorder()
    throttled = ModelInvocationError("ThrottlingException: rate exceeded", retryable=True, code=ErrorCode.RATE_LIMITED)
    backend = ScriptedBackend([throttled, throttled, throttled])

    outcome = await run_session("hi", SYSTEM, order_registry, loop_policy, backend=backend, sleep=sleep)

    assert isinstance(outcome, Failed)
    assert outcome.error.kind is ErrorKind.MODEL_INVOCATION
    assert outcome.error.code is ErrorCode.RATE_LIMITED
    assert backend.call_count == 3
    assert sleep.delays == pytest.approx([0.1, 0.2])
    assert sleep.delays[0] < sleep.delays[1]


@pytest.mark.asyncio
@pytest.mark.parametrize(("step", "kind"), [
    ({"content": [{"type": "text", "text": "trunc"}], "stop_reason": "max_tokens"}, ErrorKind.STRUCTURAL),
    ({"content": [{"type": "text", "text": "I will call a tool"}], "stop_reason": "tool_use"}, ErrorKind.STRUCTURAL),
    ({"content": [{"type": "video"}], "stop_reason": "end_turn"}, ErrorKind.STRUCTURAL),
    ({"content": [{"type": "text", "text": "overloaded"}], "stop_reason": "error"}, ErrorKind.MODEL_INVOCATION),
])
async def test_fatal_responses(order_registry: ToolRegistry, loop_policy: LoopPolicy,
                               step: dict, kind: ErrorKind) -> None:
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    outcome = await ReasoningLoop(ScriptedBackend([step]), loop_policy).run(session, "hi")

    assert isinstance(outcome, Failed)
    assert outcome.error.kind is kind
    assert session.status is SessionStatus.FAILED
    assert session.error == outcome.error
    assert len(session.conversation) == 1


@pytest.mark.asyncio
async def test_unexpected_error_still_reaches_a_terminal_state(loop_policy: LoopPolicy) -> None:
    """A failure outside the error taxonomy fails the session with a descriptor."""

    class BrokenRegistry(ToolRegistry):
        async def dispatch(self, invocation, *, timeout=None):
            raise LookupError("registry index corrupted")

    registry = BrokenRegistry()
    registry.register(ToolDefinition(name="wait", description="Sleep a while", input_schema=Delay), lambda d: None)
    session = Session.create(SYSTEM, registry, loop_policy.max_turns)

    outcome = await ReasoningLoop(ScriptedBackend([tool_use_response(("a", "wait", {"seconds": 0}))]),
                                  loop_policy).run(session, "go")

    assert isinstance(outcome, Failed)
    assert outcome.error.kind is ErrorKind.STRUCTURAL
    assert outcome.error.message.startswith("Reasoning loop failed")
    assert session.status is SessionStatus.FAILED
    assert session.error == outcome.error


@pytest.mark.asyncio
async def test_duplicate_invocation_ids_fail_session(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    backend = ScriptedBackend([
        tool_use_response(("same", "check_order_status", {"order_id": "1"})),
        tool_use_response(("same", "check_order_status", {"order_id": "2"})),
    ])
    outcome = await run_session("hi", SYSTEM, order_registry, loop_policy, backend=backend)
    assert isinstance(outcome, Failed) and outcome.error.kind is ErrorKind.STRUCTURAL


# ═════════════════════════════════════════════════════════════════════════════
# Cancellation
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cancel_during_tool_execution_discards_partial_results(loop_policy: LoopPolicy) -> None:
    fast_done = asyncio.Event()

    async def wait(d: Delay) -> float:
        await asyncio.sleep(d.seconds)
        if d.seconds == 0:
            fast_done.set()
        return d.seconds

    registry = ToolRegistry()
    registry.register(ToolDefinition(name="wait", description="Sleep a while", input_schema=Delay), wait)
    backend = ScriptedBackend([tool_use_response(("fast", "wait", {"seconds": 0}), ("slow", "wait", {"seconds": 10}))])
    session = Session.create(SYSTEM, registry, loop_policy.max_turns)

    task = asyncio.create_task(ReasoningLoop(backend, loop_policy).run(session, "go"))
    await fast_done.wait()
    assert session.state is LoopState.EXECUTING_TOOLS
    assert session.cancel()

    outcome = await task
    assert isinstance(outcome, Failed)
    assert outcome.error.kind is ErrorKind.CANCELLED
    assert session.status is SessionStatus.FAILED
    assert session.conversation.last.role is Role.ASSISTANT
    assert len(session.conversation.pending_invocations()) == 2
    assert not session.cancel()


@pytest.mark.asyncio
async def test_cancel_during_backoff(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    backend = ScriptedBackend([TimeoutError("read timed out"), text_response("unused")])
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    slow_retry = loop_policy.model_copy(update={"retry": loop_policy.retry.model_copy(update={"base_delay": 5.0, "max_delay": 5.0})})

    task = asyncio.create_task(ReasoningLoop(backend, slow_retry).run(session, "hi"))
    while backend.call_count == 0:
        await asyncio.sleep(0)
    await asyncio.sleep(0)
    session.cancel()

    outcome = await task
    assert outcome.error.kind is ErrorKind.CANCELLED
    assert backend.call_count == 1


@pytest.mark.asyncio
async def test_session_cancel_during_backend_call(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    """Cancelling through the session while the backend is thinking returns Failed."""
    in_flight = asyncio.Event()

    async def thinking(request: dict) -> dict:
        in_flight.set()
        await asyncio.sleep(10)
        return text_response("too late")

    backend = ScriptedBackend().push(thinking)
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    task = asyncio.create_task(ReasoningLoop(backend, loop_policy).run(session, "hi"))
    await in_flight.wait()
    assert session.state is LoopState.AWAITING_BACKEND
    assert session.cancel()

    outcome = await task
    assert isinstance(outcome, Failed)
    assert outcome.error.kind is ErrorKind.CANCELLED
    assert outcome.turn_count == 1
    assert session.status is SessionStatus.FAILED
    assert backend.call_count == 1 and backend.exhausted
    assert not task.cancelled()


@pytest.mark.asyncio
async def test_external_task_cancellation_reraises(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    """Cancelling the task directly still marks the session, then propagates."""
    gate = asyncio.Event()

    async def blocked(request: dict) -> dict:
        await gate.wait()
        return text_response("never")

    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    task = asyncio.create_task(ReasoningLoop(ScriptedBackend([blocked]), loop_policy).run(session, "hi"))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.status is SessionStatus.FAILED
    assert session.error.kind is ErrorKind.CANCELLED


def test_cancel_before_start_fails_session(order_registry: ToolRegistry) -> None:
    session = Session.create(SYSTEM, order_registry, max_turns=3)
    assert session.cancel()
    assert session.status is SessionStatus.FAILED
    assert session.error.kind is ErrorKind.CANCELLED


# ═════════════════════════════════════════════════════════════════════════════
# Session lifecycle
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_terminal_session_cannot_be_reused(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    loop = ReasoningLoop(ScriptedBackend([text_response("hello"), text_response("again")]), loop_policy)
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    await loop.run(session, "hi")

    with pytest.raises(SessionStateError):
        await loop.run(session, "hi again")


@pytest.mark.asyncio
async def test_new_session_seeded_from_prior_history(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    first = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    await ReasoningLoop(ScriptedBackend([text_response("Hi! How can I help?")]), loop_policy).run(first, "hello")

    backend = ScriptedBackend([text_response("Order 42 has shipped.")])
    second = Session.create(SYSTEM, order_registry, loop_policy.max_turns, history=first.conversation.messages)
    outcome = await ReasoningLoop(backend, loop_policy).run(second, "And order 42?")

    assert outcome.status == "completed"
    assert second.id != first.id
    assert [m["role"] for m in backend.last_request["messages"]] == ["user", "assistant", "user"]
    assert len(first.conversation) == 2


@pytest.mark.asyncio
async def test_snapshot_is_json_serializable(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    await ReasoningLoop(ScriptedBackend([
        tool_use_response(("a", "check_order_status", {"order_id": "42"})),
        text_response("Shipped."),
    ]), loop_policy).run(session, "status?")

    snapshot = session.snapshot()
    restored = SessionSnapshot.model_validate_json(snapshot.model_dump_json())

    assert restored.status is SessionStatus.COMPLETED
    assert restored.turn_count == 2
    assert restored.messages == session.conversation.messages
    assert restored.final_text == "Shipped."


def test_outcome_union_discriminates_on_status() -> None:
    adapter = TypeAdapter(Outcome)
    outcome = adapter.validate_python({"status": "completed", "session_id": "s", "final_text": "ok", "turn_count": 1})
    assert isinstance(outcome, Completed)


@pytest.mark.asyncio
async def test_loop_logs_with_session_id(order_registry: ToolRegistry, loop_policy: LoopPolicy,
                                         captured_logs: CaptureRenderer) -> None:
    session = Session.create(SYSTEM, order_registry, loop_policy.max_turns)
    await ReasoningLoop(ScriptedBackend([text_response("hi")]), loop_policy).run(session, "hi")

    loop_entries = [e for e in captured_logs.entries if e.context.get("logger") == "reactloop.loop"]
    assert {"session started", "session finished"} <= {e.event for e in loop_entries}
    assert all(e.context["session_id"] == session.id for e in loop_entries)


def test_run_session_sync(order_registry: ToolRegistry, loop_policy: LoopPolicy) -> None:
    backend = ScriptedBackend([text_response("Sync hello.")])
    outcome = run_session_sync("hi", SYSTEM, order_registry, loop_policy, backend=backend)
    assert isinstance(outcome, Completed) and outcome.final_text == "Sync hello."
