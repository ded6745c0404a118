"""Reasoning loop: sessions, policy, outcomes and the orchestrator."""

from .orchestrator import ReasoningLoop, run_session, run_session_sync
from .session import (
    Completed,
    Failed,
    LoopPolicy,
    LoopState,
    MaxTurnsExceeded,
    Outcome,
    Session,
    SessionSnapshot,
    SessionStatus,
)

__all__ = [
    "Completed",
    "Failed",
    "LoopPolicy",
    "LoopState",
    "MaxTurnsExceeded",
    "Outcome",
    "ReasoningLoop",
    "Session",
    "SessionSnapshot",
    "SessionStatus",
    "run_session",
    "run_session_sync",
]
