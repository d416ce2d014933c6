"""Coordinator modes and the table of legal transitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Mode(str, Enum):
    IDLE = "idle"
    ARMED_LISTENING = "armed_listening"
    CAPTURING = "capturing"
    AWAITING_REPLY = "awaiting_reply"
    SYNTHESIZING = "synthesizing"
    SPEAKING = "speaking"
    MANUAL_RECORDING = "manual_recording"


# Re-entering the current mode is always allowed and is a no-op.
TRANSITIONS: dict[Mode, frozenset[Mode]] = {
    Mode.IDLE: frozenset({Mode.ARMED_LISTENING, Mode.CAPTURING, Mode.MANUAL_RECORDING, Mode.AWAITING_REPLY}),
    Mode.ARMED_LISTENING: frozenset({Mode.CAPTURING, Mode.IDLE, Mode.AWAITING_REPLY}),
    Mode.CAPTURING: frozenset({Mode.AWAITING_REPLY, Mode.ARMED_LISTENING, Mode.IDLE}),
    Mode.MANUAL_RECORDING: frozenset({Mode.IDLE}),
    Mode.AWAITING_REPLY: frozenset({Mode.SYNTHESIZING, Mode.IDLE}),
    Mode.SYNTHESIZING: frozenset({Mode.SPEAKING, Mode.ARMED_LISTENING, Mode.IDLE}),
    Mode.SPEAKING: frozenset({Mode.ARMED_LISTENING, Mode.IDLE}),
}

LISTENING_MODES = frozenset({Mode.ARMED_LISTENING, Mode.CAPTURING})
SUBMIT_MODES = frozenset({Mode.IDLE, Mode.ARMED_LISTENING, Mode.CAPTURING})


def is_legal(current: Mode, new: Mode) -> bool:
    return new == current or new in TRANSITIONS[current]


class RequestKind(str, Enum):
    REPLY = "reply"
    SYNTHESIS = "synthesis"
    TRANSCRIPTION = "transcription"


@dataclass(frozen=True)
class RequestHandle:
    """Identifies one gateway call; results carrying a retired handle are dropped."""

    kind: RequestKind
    serial: int
