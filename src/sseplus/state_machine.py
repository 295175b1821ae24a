"""Connection phase state machine.

IDLE ──→ CONNECTING ──[2xx text/event-stream]──→ STREAMING ──┐
              │ │                                             │
              │ └──[non-2xx / wrong content-type]──→ RESPONSE_FAILED
              │                                             │ │
              └──[transport error]──→ REQUEST_FAILED        │ │
                                            │               │ │
                                            v               v v
                       CONNECTING ←────── RETRYING ←────────┘

Any phase can end in TERMINAL (abort, timeout, retries exhausted, end of
stream with the on-error strategy). reconnect() jumps back to CONNECTING
from anywhere but IDLE.
"""

from __future__ import annotations

import enum

import structlog

log = structlog.get_logger()


class ConnectionPhase(enum.Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    REQUEST_FAILED = "REQUEST_FAILED"
    RESPONSE_FAILED = "RESPONSE_FAILED"
    RETRYING = "RETRYING"
    TERMINAL = "TERMINAL"


# Valid transitions: (from_phase, to_phase)
VALID_TRANSITIONS: set[tuple[ConnectionPhase, ConnectionPhase]] = {
    (ConnectionPhase.IDLE, ConnectionPhase.CONNECTING),
    (ConnectionPhase.CONNECTING, ConnectionPhase.STREAMING),
    (ConnectionPhase.CONNECTING, ConnectionPhase.REQUEST_FAILED),
    (ConnectionPhase.CONNECTING, ConnectionPhase.RESPONSE_FAILED),
    (ConnectionPhase.STREAMING, ConnectionPhase.RETRYING),
    (ConnectionPhase.REQUEST_FAILED, ConnectionPhase.RETRYING),
    (ConnectionPhase.RESPONSE_FAILED, ConnectionPhase.RETRYING),
    (ConnectionPhase.RETRYING, ConnectionPhase.CONNECTING),
}
# Terminate from any live state
VALID_TRANSITIONS |= {
    (phase, ConnectionPhase.TERMINAL)
    for phase in ConnectionPhase
    if phase is not ConnectionPhase.TERMINAL
}
# Manual reconnect supersedes whatever is running
VALID_TRANSITIONS |= {
    (phase, ConnectionPhase.CONNECTING)
    for phase in ConnectionPhase
    if phase is not ConnectionPhase.IDLE
}


class InvalidTransition(Exception):
    """Raised when an invalid phase transition is attempted."""

    def __init__(self, from_phase: ConnectionPhase, to_phase: ConnectionPhase) -> None:
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"Invalid transition: {from_phase.value} → {to_phase.value}")


def validate_transition(from_phase: ConnectionPhase, to_phase: ConnectionPhase) -> None:
    """Validate a phase transition, raising InvalidTransition if not allowed."""
    if (from_phase, to_phase) not in VALID_TRANSITIONS:
        raise InvalidTransition(from_phase, to_phase)


def transition(
    current: ConnectionPhase,
    target: ConnectionPhase,
    url: str,
    trigger: str = "",
) -> ConnectionPhase:
    """Execute a validated phase transition, logging the change."""
    validate_transition(current, target)
    log.debug(
        "phase_transition",
        url=url,
        from_phase=current.value,
        to_phase=target.value,
        trigger=trigger,
    )
    return target
