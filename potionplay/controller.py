"""
PotionPlay Interaction Controller

Top-level coordinator for the hands-free cauldron:

    speech capture -> wake phrase -> capture and interpret -> speak
                                                          \\-> conversation turns

Outside a conversation every transcript is checked for the wake phrase.
Inside one, every final utterance is a turn. After each cycle or turn the
controller resumes listening.

end_conversation() starts a new session. A capture cycle from an older
session may finish, but it neither speaks nor opens a conversation, and it
resumes listening only when the teardown asked for that. An in-flight turn
is cancelled outright.

Background work runs in tasks owned by the controller; each is wrapped so
an exception is logged and recorded in ``last_error`` instead of escaping
into the event loop.

Usage:
    controller = create_controller(load_config())
    controller.start()
    ...
    await controller.shutdown()
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional, Set

from potionplay.capture_pipeline import CaptureAndInterpretPipeline
from potionplay.config import PotionPlayConfig
from potionplay.conversation import ConversationLoopController
from potionplay.interaction_state import CycleLease, InteractionStateMachine
from potionplay.logging_config import get_logger
from potionplay.relay_client import RelayClient
from potionplay.speech_dispatcher import SpeechSynthesisDispatcher
from potionplay.types import Interpretation, TranscriptEvent
from potionplay.wake_phrase import WakePhraseDetector

logger = get_logger(__name__)


class InteractionController:
    """Wires the interaction components together and owns their lifecycle."""

    def __init__(
        self,
        state: InteractionStateMachine,
        capture,
        detector: WakePhraseDetector,
        pipeline: CaptureAndInterpretPipeline,
        dispatcher: SpeechSynthesisDispatcher,
        conversation: ConversationLoopController,
        wake_enabled: bool = True,
        auto_start_conversation: bool = True,
        closers: Optional[list] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = state
        self.capture = capture
        self.detector = detector
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.conversation = conversation
        self.wake_enabled = wake_enabled
        self.auto_start_conversation = auto_start_conversation
        self._closers = closers or []
        self._clock = clock

        self.capture.on_transcript = self._on_transcript

        self.last_error: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()
        self._turn_in_flight = False
        self._turn_task: Optional[asyncio.Task] = None
        self._shutting_down = False

        # Bumped by every teardown; stale cycles and turns compare against it
        self._session = 0
        self._stay_idle = False
        self._camera_requested = False

    @property
    def camera_error(self) -> Optional[str]:
        """Camera failure shown until the camera works; teardown keeps it."""
        return self.pipeline.camera_error

    # =========================================================================
    # Task management
    # =========================================================================

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Run a coroutine in the background under the controller's guard."""
        task = asyncio.create_task(self._guarded(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, coro: Awaitable) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Background task failed: {e}")

    async def wait_idle(self) -> None:
        """Wait for all background work currently scheduled."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    # =========================================================================
    # Listening
    # =========================================================================

    def start(self) -> bool:
        """
        Begin continuous listening with auto-restart.

        The first call also acquires the camera in the background, so a
        missing device or denied permission shows up before any wake phrase.
        """
        if self._shutting_down:
            return False
        self._stay_idle = False
        if not self._camera_requested and self.pipeline.camera is not None:
            self._camera_requested = True
            self.spawn(self.pipeline.open_camera(), name="camera-open")
        if not self.wake_enabled and not self.state.state.in_conversation:
            logger.info("Wake phrase disabled; use manual capture")
        started = self.capture.start(auto_restart=True)
        if started:
            logger.info("Listening")
        return started

    def _resume_listening(self) -> None:
        if self._shutting_down or self._stay_idle or self.state.state.analyzing:
            return
        self.start()

    def _on_transcript(self, event: TranscriptEvent) -> None:
        """Route one transcript. Runs inside the capture task; must not await."""
        if self.state.state.in_conversation:
            if not event.is_final or not event.text.strip() or self._turn_in_flight:
                return
            self._turn_in_flight = True
            self.capture.stop()
            self._turn_task = self.spawn(
                self._conversation_turn(event.text, self._session), name="conversation-turn"
            )
            return

        if not self.wake_enabled:
            return

        lease = self.detector.evaluate(event, now=self._clock())
        if lease is None:
            return
        self.capture.stop()
        self.spawn(self._run_cycle(lease, self._session), name="capture-cycle")

    # =========================================================================
    # Cycles and turns
    # =========================================================================

    async def _run_cycle(self, lease: CycleLease, session: int) -> Interpretation:
        try:
            if session != self._session:
                lease.release(self._clock())
                return Interpretation(success=False, error="Capture cancelled")

            interpretation = await self.pipeline.run(lease)
            if session != self._session:
                logger.info("Conversation ended during capture; not starting one")
            elif not interpretation.success:
                self.last_error = interpretation.error
            elif (
                self.auto_start_conversation
                and interpretation.text.strip()
                and not self._shutting_down
            ):
                # Already spoken by the pipeline
                await self.conversation.start(interpretation.text, speak=False)
            return interpretation
        finally:
            self._resume_listening()

    async def _conversation_turn(self, text: str, session: int) -> None:
        try:
            reply = await self.conversation.handle_user_input(text)
            if reply is not None and not reply.success and session == self._session:
                self.last_error = reply.error
        finally:
            self._turn_in_flight = False
            self._turn_task = None
            if session == self._session:
                self._resume_listening()

    async def _cancel_turn(self) -> None:
        """Cancel the in-flight turn and wait until it has finished."""
        task = self._turn_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.wait({task})

    async def capture_now(self) -> Optional[Interpretation]:
        """
        Manual trigger. Respects the in-flight guard but not the cooldown.

        Returns:
            The interpretation, or None when a cycle is already running
        """
        lease = self.state.try_acquire_cycle(self._clock(), self.detector.cooldown_sec, ignore_cooldown=True)
        if lease is None:
            logger.info("Capture already in progress")
            return None
        session = self._session
        self._stay_idle = False
        await self.capture.abort()
        return await self._run_cycle(lease, session)

    async def start_conversation(self) -> bool:
        """Open a conversation about the latest successful interpretation."""
        latest = self.pipeline.latest
        if latest is None or not latest.success or not latest.text.strip():
            self.last_error = "Capture an image before starting a conversation"
            logger.warning(self.last_error)
            return False

        self._stay_idle = False
        await self.capture.abort()
        try:
            await self.conversation.start(latest.text, speak=True)
        finally:
            self._resume_listening()
        return True

    async def end_conversation(self, resume_listening: bool = False) -> None:
        """
        Tear down conversation mode: history, recognition, speech and flags.

        Calling it again leaves the same state. A capture cycle still in
        flight finishes without speaking or opening a conversation. Without
        ``resume_listening`` the controller stays idle until start(); with
        it, wake-phrase listening resumes once nothing is in flight.
        """
        self._session += 1
        self._stay_idle = not resume_listening
        self.dispatcher.cancel()
        await self._cancel_turn()
        self.conversation.end()
        await self.capture.abort()
        self.pipeline.clear()
        self.last_error = None
        if resume_listening:
            self._resume_listening()

    async def shutdown(self) -> None:
        """Stop everything and release hardware and network handles."""
        if self._shutting_down:
            return
        self._shutting_down = True
        self._session += 1
        logger.info("Shutting down")

        self.conversation.end()
        self.dispatcher.cancel()
        await self.capture.abort()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.wait(set(self._tasks))

        for close in self._closers:
            try:
                result = close()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(f"Error during shutdown: {e}")

        logger.info("Shutdown complete")


def create_controller(
    config: PotionPlayConfig,
    recognition_backend=None,
    camera=None,
    use_camera: bool = True,
) -> InteractionController:
    """
    Build the full interaction graph from configuration.

    Args:
        config: Loaded configuration
        recognition_backend: Override the configured recognition backend
        camera: Override the webcam frame source
        use_camera: False to run without any webcam
    """
    from voice.stt import (
        ConsoleRecognitionBackend,
        SpeechCaptureAdapter,
        WhisperRecognitionBackend,
    )
    from voice.tts import AudioPlayer, LocalSpeechSynthesizer, OpenAISpeechBackend

    state = InteractionStateMachine()
    closers: list = []

    if recognition_backend is None:
        if config.recognition.backend == "whisper":
            recognition_backend = WhisperRecognitionBackend(config.recognition)
        else:
            recognition_backend = ConsoleRecognitionBackend()

    capture = SpeechCaptureAdapter(
        recognition_backend,
        state,
        restart_delay_sec=config.recognition.restart_delay_sec,
        error_backoff_sec=config.recognition.error_backoff_sec,
    )

    relay = RelayClient.from_config(config.relay)
    closers.append(relay.close)

    if config.speech.backend == "openai":
        speech_backend = OpenAISpeechBackend(model=config.speech.openai_model)
        closers.append(speech_backend.close)
    else:
        speech_backend = relay

    dispatcher = SpeechSynthesisDispatcher.from_config(
        config.speech,
        backend=speech_backend,
        player=AudioPlayer(),
        local=LocalSpeechSynthesizer(config.local_voice),
        state=state,
        capture=capture,
    )

    if camera is None and use_camera and config.camera.enabled:
        from services.camera import WebcamFrameSource
        camera = WebcamFrameSource.from_config(config.camera)
    if camera is not None:
        closers.append(camera.release)

    pipeline = CaptureAndInterpretPipeline(
        camera,
        relay,
        dispatcher=dispatcher,
        jpeg_quality=config.camera.jpeg_quality,
    )
    detector = WakePhraseDetector(
        state,
        phrase=config.wake.phrase,
        variations=config.wake.variations,
        cooldown_sec=config.wake.cooldown_sec,
    )
    conversation = ConversationLoopController(relay, dispatcher, state)

    return InteractionController(
        state=state,
        capture=capture,
        detector=detector,
        pipeline=pipeline,
        dispatcher=dispatcher,
        conversation=conversation,
        wake_enabled=config.wake.enabled,
        auto_start_conversation=config.conversation.auto_start,
        closers=closers,
    )
