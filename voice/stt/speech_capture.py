"""
PotionPlay Speech Capture Adapter

Wraps a RecognitionBackend in a continuous listening loop and keeps the
interaction state's voice phase in step with it:

- LISTEN_STARTED when a recognition session opens
- TRANSCRIPT for every interim or final result, then the transcript callback
- LISTEN_ENDED when the session closes, however it closes

With auto-restart on, a closed session is reopened after a short delay
(longer after an error). Speaking and an in-flight trigger both clear
auto-restart, so the loop never reopens while the device is talking.

Usage:
    capture = SpeechCaptureAdapter(backend, machine, on_transcript=handle)
    capture.start(auto_restart=True)
    ...
    await capture.abort()
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Set

from potionplay.exceptions import InvalidTransitionError, RecognitionError
from potionplay.interaction_state import EventKind, InteractionStateMachine, StateEvent
from potionplay.logging_config import get_logger
from potionplay.types import RecognitionBackend, TranscriptEvent

logger = get_logger(__name__)

TranscriptCallback = Callable[[TranscriptEvent], None]
EndedCallback = Callable[[], None]


class SpeechCaptureAdapter:
    """
    Continuous speech capture over a recognition backend.

    The transcript callback is synchronous and runs inside the capture task.
    It may call stop() (the current session closes at its next suspension
    point) but must not await abort().
    """

    def __init__(
        self,
        backend: RecognitionBackend,
        state: InteractionStateMachine,
        on_transcript: Optional[TranscriptCallback] = None,
        on_ended: Optional[EndedCallback] = None,
        restart_delay_sec: float = 0.25,
        error_backoff_sec: float = 1.0,
    ):
        self.backend = backend
        self.state = state
        self.on_transcript = on_transcript
        self.on_ended = on_ended
        self.restart_delay_sec = restart_delay_sec
        self.error_backoff_sec = error_backoff_sec
        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        # Diagnostics
        self.sessions_started = 0
        self.errors = 0

    @property
    def is_running(self) -> bool:
        """A capture loop is active and has not been asked to stop."""
        return self._task is not None and not self._task.done()

    @property
    def supported(self) -> bool:
        return self.backend.supported

    def start(self, auto_restart: bool = True) -> bool:
        """
        Begin listening.

        Args:
            auto_restart: Reopen the session whenever it closes

        Returns:
            True if a capture loop is running after the call
        """
        if not self.backend.supported:
            logger.warning("Speech recognition not supported on this host")
            return False

        if self.state.state.is_speaking:
            logger.debug("Not starting capture while speaking")
            return False

        self.state.set_auto_restart(auto_restart)
        if self.is_running:
            return True

        # A stopped loop may still be closing its session; the new loop waits for it
        previous = {t for t in self._pending if not t.done()}
        task = asyncio.create_task(self._run(previous), name="speech-capture")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._task = task
        return True

    def stop(self) -> None:
        """Stop listening and disable auto-restart. Safe to call anytime."""
        if self.state.state.auto_restart:
            self.state.set_auto_restart(False)
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def abort(self) -> None:
        """Stop listening and wait until every session has fully closed."""
        self.stop()
        current = asyncio.current_task()
        # From a transcript callback the cancel above ends the session
        waiting = {t for t in self._pending if not t.done() and t is not current}
        if waiting:
            await asyncio.wait(waiting)

    # =========================================================================
    # Capture loop
    # =========================================================================

    async def _run(self, previous: Set[asyncio.Task]) -> None:
        if previous:
            await asyncio.wait(previous)

        while True:
            if not self.backend.supported:
                logger.warning("Speech recognition became unavailable, capture stopped")
                return

            try:
                self.state.apply(StateEvent(EventKind.LISTEN_STARTED))
            except InvalidTransitionError as e:
                logger.debug(f"Capture not started: {e.message}")
                return

            self.sessions_started += 1
            delay = self.restart_delay_sec
            try:
                async for event in self.backend.listen():
                    self.state.apply(StateEvent(EventKind.TRANSCRIPT, text=event.text))
                    self._dispatch(event)
            except RecognitionError as e:
                if e.kind == "no-speech":
                    logger.debug("No speech detected, restarting")
                else:
                    self.errors += 1
                    logger.warning(f"Speech recognition error ({e.kind}): {e.message}")
                    delay = self.error_backoff_sec
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.errors += 1
                logger.error(f"Speech capture error: {e}")
                delay = self.error_backoff_sec
            finally:
                self.state.apply(StateEvent(EventKind.LISTEN_ENDED))
                self._notify_ended()

            if not self.state.state.auto_restart:
                return
            await asyncio.sleep(delay)
            if not self.state.state.auto_restart:
                return

    def _dispatch(self, event: TranscriptEvent) -> None:
        if self.on_transcript is None:
            return
        try:
            self.on_transcript(event)
        except Exception as e:
            logger.error(f"Transcript callback error: {e}")

    def _notify_ended(self) -> None:
        if self.on_ended is None:
            return
        try:
            self.on_ended()
        except Exception as e:
            logger.error(f"Capture ended callback error: {e}")
