"""State definition for the function-call loop graph."""

from __future__ import annotations

from enum import Enum
from typing import Optional, TypedDict

from chat_core.domain.models import ChatRequest, Message
from chat_core.streaming.cancellation import CancellationToken


class LoopPhase(str, Enum):
    """Phases of one append/reload submission."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    DECIDED = "decided"
    AWAITING_HANDLER = "awaiting_handler"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class LoopState(TypedDict, total=False):
    """State shared across LangGraph nodes."""

    request: ChatRequest
    token: CancellationToken
    message: Optional[Message]
    rounds: int
    phase: LoopPhase
