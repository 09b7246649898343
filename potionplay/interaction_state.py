"""
PotionPlay Interaction State

The shared state every interaction component reads, and the only place it
is mutated. State is an immutable snapshot; events move it forward through
a pure transition function backed by an enumerated phase table.

Voice I/O is a single phase (IDLE, LISTENING or SPEAKING), so listening and
speaking can never be true at the same time. Analysis is tracked separately
because it overlaps speaking during the interpret-to-speak handoff, and is
guarded by a lease: acquiring it is a synchronous check-and-set, so no other
trigger can interleave between the check and the flag being raised.

Usage:
    machine = InteractionStateMachine()
    lease = machine.try_acquire_cycle(now=time.monotonic(), cooldown_sec=12.0)
    if lease is None:
        return  # busy or cooling down
    try:
        ...
    finally:
        lease.release(time.monotonic())
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from potionplay.exceptions import InvalidTransitionError
from potionplay.logging_config import get_logger

logger = get_logger(__name__)


__all__ = [
    "VoicePhase",
    "EventKind",
    "StateEvent",
    "InteractionState",
    "PHASE_TRANSITIONS",
    "transition",
    "InteractionStateMachine",
    "CycleLease",
]


class VoicePhase(Enum):
    """Which voice I/O channel is active."""
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"


class EventKind(Enum):
    """Everything that can happen to the interaction state."""
    LISTEN_STARTED = "listen_started"
    LISTEN_ENDED = "listen_ended"
    TRANSCRIPT = "transcript"
    AUTO_RESTART_SET = "auto_restart_set"
    TRIGGERED = "triggered"
    CYCLE_COMPLETED = "cycle_completed"
    SPEECH_STARTED = "speech_started"
    SPEECH_ENDED = "speech_ended"
    CONVERSATION_STARTED = "conversation_started"
    CONVERSATION_ENDED = "conversation_ended"


@dataclass(frozen=True)
class StateEvent:
    """An event applied to the state.

    ``at`` is a monotonic timestamp (TRIGGERED, CYCLE_COMPLETED), ``text`` the
    transcript (TRANSCRIPT) and ``flag`` the new value (AUTO_RESTART_SET).
    """
    kind: EventKind
    at: Optional[float] = None
    text: str = ""
    flag: bool = False


@dataclass(frozen=True)
class InteractionState:
    """Immutable snapshot of the interaction flags."""
    phase: VoicePhase = VoicePhase.IDLE
    analyzing: bool = False
    in_conversation: bool = False
    auto_restart: bool = False
    last_trigger_at: Optional[float] = None
    transcript_buffer: str = ""

    @property
    def is_listening(self) -> bool:
        return self.phase is VoicePhase.LISTENING

    @property
    def is_speaking(self) -> bool:
        return self.phase is VoicePhase.SPEAKING

    @property
    def is_analyzing(self) -> bool:
        return self.analyzing

    @property
    def is_idle(self) -> bool:
        """No voice I/O, no analysis, no conversation."""
        return (
            self.phase is VoicePhase.IDLE
            and not self.analyzing
            and not self.in_conversation
            and not self.auto_restart
        )


_I, _L, _S = VoicePhase.IDLE, VoicePhase.LISTENING, VoicePhase.SPEAKING

# (phase, event) -> next phase. Pairs absent from the table are rejected.
PHASE_TRANSITIONS: Dict[Tuple[VoicePhase, EventKind], VoicePhase] = {
    # Idle
    (_I, EventKind.LISTEN_STARTED): _L,
    (_I, EventKind.LISTEN_ENDED): _I,
    (_I, EventKind.AUTO_RESTART_SET): _I,
    (_I, EventKind.TRIGGERED): _I,
    (_I, EventKind.CYCLE_COMPLETED): _I,
    (_I, EventKind.SPEECH_STARTED): _S,
    (_I, EventKind.SPEECH_ENDED): _I,
    (_I, EventKind.CONVERSATION_STARTED): _I,
    (_I, EventKind.CONVERSATION_ENDED): _I,
    # Listening
    (_L, EventKind.LISTEN_ENDED): _I,
    (_L, EventKind.TRANSCRIPT): _L,
    (_L, EventKind.AUTO_RESTART_SET): _L,
    (_L, EventKind.TRIGGERED): _L,
    (_L, EventKind.CYCLE_COMPLETED): _L,
    (_L, EventKind.CONVERSATION_STARTED): _L,
    (_L, EventKind.CONVERSATION_ENDED): _L,
    # Speaking
    (_S, EventKind.LISTEN_ENDED): _S,
    (_S, EventKind.AUTO_RESTART_SET): _S,
    (_S, EventKind.CYCLE_COMPLETED): _S,
    (_S, EventKind.SPEECH_ENDED): _I,
    (_S, EventKind.CONVERSATION_STARTED): _S,
    (_S, EventKind.CONVERSATION_ENDED): _S,
}


def transition(state: InteractionState, event: StateEvent) -> InteractionState:
    """Apply one event to a state snapshot.

    Pure function: returns a new snapshot and never mutates its input.

    Raises:
        InvalidTransitionError: The event is not allowed in the current phase,
            or a trigger arrives while a cycle is already in flight.
    """
    key = (state.phase, event.kind)
    if key not in PHASE_TRANSITIONS:
        raise InvalidTransitionError(
            f"Event {event.kind.value} not allowed while {state.phase.value}",
            phase=state.phase.value,
            event=event.kind.value,
        )
    changes = {"phase": PHASE_TRANSITIONS[key]}

    kind = event.kind
    if kind is EventKind.LISTEN_STARTED:
        changes["transcript_buffer"] = ""
    elif kind is EventKind.TRANSCRIPT:
        changes["transcript_buffer"] = event.text
    elif kind is EventKind.AUTO_RESTART_SET:
        changes["auto_restart"] = event.flag
    elif kind is EventKind.TRIGGERED:
        if state.analyzing:
            raise InvalidTransitionError(
                "Trigger rejected: a cycle is already in flight",
                phase=state.phase.value,
                event=kind.value,
            )
        changes.update(
            analyzing=True,
            last_trigger_at=event.at,
            transcript_buffer="",
            auto_restart=False,
        )
    elif kind is EventKind.CYCLE_COMPLETED:
        changes.update(analyzing=False, last_trigger_at=event.at)
    elif kind is EventKind.SPEECH_STARTED:
        changes["auto_restart"] = False
    elif kind is EventKind.CONVERSATION_STARTED:
        changes["in_conversation"] = True
    elif kind is EventKind.CONVERSATION_ENDED:
        changes.update(in_conversation=False, auto_restart=False, transcript_buffer="")

    return replace(state, **changes)


StateObserver = Callable[[InteractionState, StateEvent, InteractionState], None]


class InteractionStateMachine:
    """
    Mutable holder for the current InteractionState.

    Components receive the same machine by constructor injection. All
    mutation goes through apply(); observers see every transition.
    """

    def __init__(self, initial: Optional[InteractionState] = None):
        self._state = initial or InteractionState()
        self._observers: List[StateObserver] = []

    @property
    def state(self) -> InteractionState:
        """Current snapshot."""
        return self._state

    def add_observer(self, observer: StateObserver) -> None:
        self._observers.append(observer)

    def can_apply(self, event: StateEvent) -> bool:
        """Check whether an event would be accepted, without applying it."""
        try:
            transition(self._state, event)
        except InvalidTransitionError:
            return False
        return True

    def apply(self, event: StateEvent) -> InteractionState:
        """Apply an event and notify observers.

        Raises:
            InvalidTransitionError: see transition()
        """
        old = self._state
        new = transition(old, event)
        self._state = new

        if new != old:
            logger.debug(
                f"{event.kind.value}: phase {old.phase.value} -> {new.phase.value}, "
                f"analyzing={new.analyzing}, conversation={new.in_conversation}"
            )

        for observer in self._observers:
            try:
                observer(old, event, new)
            except Exception as e:
                logger.warning(f"State observer error: {e}")
        return new

    def set_auto_restart(self, enabled: bool) -> None:
        self.apply(StateEvent(EventKind.AUTO_RESTART_SET, flag=enabled))

    def cooldown_remaining(self, now: float, cooldown_sec: float) -> float:
        """Seconds until a new trigger would be accepted (0 when open)."""
        last = self._state.last_trigger_at
        if last is None:
            return 0.0
        return max(0.0, cooldown_sec - (now - last))

    def try_acquire_cycle(
        self,
        now: float,
        cooldown_sec: float,
        ignore_cooldown: bool = False,
    ) -> Optional["CycleLease"]:
        """Acquire the single in-flight capture cycle.

        Check and set run without a suspension point, so within one event
        loop no second trigger can slip in between.

        Returns:
            A lease, or None when busy, cooling down, or the phase forbids it.
        """
        state = self._state
        if state.analyzing:
            logger.debug("Trigger ignored: cycle already in flight")
            return None
        if not ignore_cooldown and self.cooldown_remaining(now, cooldown_sec) > 0:
            logger.debug(
                f"Trigger ignored: cooling down "
                f"({self.cooldown_remaining(now, cooldown_sec):.1f}s left)"
            )
            return None

        event = StateEvent(EventKind.TRIGGERED, at=now)
        if not self.can_apply(event):
            logger.debug(f"Trigger ignored: not allowed while {state.phase.value}")
            return None
        self.apply(event)
        return CycleLease(self, acquired_at=now)


class CycleLease:
    """
    Handle for the single in-flight capture cycle.

    Release clears the analyzing flag and restarts the cooldown window from
    the completion time. Releasing again is a no-op.
    """

    def __init__(self, machine: InteractionStateMachine, acquired_at: float):
        self._machine = machine
        self.acquired_at = acquired_at
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self, now: float) -> bool:
        """Release the lease.

        Returns:
            True on the first call, False if already released
        """
        if self._released:
            logger.warning("Cycle lease released twice")
            return False
        self._released = True
        self._machine.apply(StateEvent(EventKind.CYCLE_COMPLETED, at=now))
        return True
