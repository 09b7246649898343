"""
Unit tests for the PotionPlay capture-and-interpret pipeline.
"""

import asyncio
import base64

import pytest

from potionplay.capture_pipeline import CaptureAndInterpretPipeline
from tests.fixtures.mock_relay import MockFrameSource, MockInterpreter


class TestPipelineRun:
    """Tests for run(lease)."""

    @pytest.mark.asyncio
    async def test_success_speaks_interpretation(self, pipeline, state, clock, interpreter, frame_source, player):
        lease = state.try_acquire_cycle(clock(), 12.0)

        result = await pipeline.run(lease)

        assert result.success
        assert pipeline.latest is result
        assert frame_source.captures == [0.8]
        assert interpreter.requests == [base64.b64encode(frame_source.jpeg).decode("ascii")]
        assert len(player.played) == 1
        assert lease.released
        assert not state.state.analyzing

    @pytest.mark.asyncio
    async def test_interpreter_failure_skips_speech(self, state, clock, frame_source, dispatcher, player):
        pipeline = CaptureAndInterpretPipeline(frame_source, MockInterpreter(fail=True), dispatcher, clock=clock)
        lease = state.try_acquire_cycle(clock(), 12.0)

        result = await pipeline.run(lease)

        assert not result.success
        assert result.error == "HTTP error! status: 500"
        assert player.played == []
        assert not state.state.analyzing
        assert pipeline.cycles_failed == 1

    @pytest.mark.asyncio
    async def test_interpreter_exception_becomes_failure(self, state, clock, frame_source, dispatcher):
        pipeline = CaptureAndInterpretPipeline(frame_source, MockInterpreter(raise_error=True), dispatcher, clock=clock)
        result = await pipeline.run(state.try_acquire_cycle(clock(), 12.0))
        assert result.error == "Failed to analyze image"
        assert not state.state.analyzing

    @pytest.mark.asyncio
    async def test_camera_error(self, state, clock, interpreter, dispatcher):
        pipeline = CaptureAndInterpretPipeline(MockFrameSource(fail=True), interpreter, dispatcher, clock=clock)
        result = await pipeline.run(state.try_acquire_cycle(clock(), 12.0))

        assert not result.success
        assert "camera permissions" in result.error
        assert interpreter.requests == []
        assert not state.state.analyzing

    @pytest.mark.asyncio
    async def test_no_camera(self, state, clock, interpreter):
        pipeline = CaptureAndInterpretPipeline(None, interpreter, clock=clock)
        result = await pipeline.run(state.try_acquire_cycle(clock(), 12.0))
        assert result.error == "Camera not available"

    @pytest.mark.asyncio
    async def test_empty_text_not_spoken(self, state, clock, frame_source, dispatcher, player):
        pipeline = CaptureAndInterpretPipeline(frame_source, MockInterpreter(text="  "), dispatcher, clock=clock)
        result = await pipeline.run(state.try_acquire_cycle(clock(), 12.0))
        assert result.success
        assert player.played == []

    @pytest.mark.asyncio
    async def test_cooldown_starts_at_completion(self, pipeline, state, clock):
        lease = state.try_acquire_cycle(clock(), 12.0)
        started = clock()
        clock.advance(4.0)

        await pipeline.run(lease)

        assert state.state.last_trigger_at == started + 4.0

    @pytest.mark.asyncio
    async def test_cancelled_cycle_still_releases(self, state, clock, frame_source, dispatcher):
        interpreter = MockInterpreter()
        interpreter.gate = asyncio.Event()
        pipeline = CaptureAndInterpretPipeline(frame_source, interpreter, dispatcher, clock=clock)
        lease = state.try_acquire_cycle(clock(), 12.0)

        task = asyncio.create_task(pipeline.run(lease))
        await asyncio.sleep(0)
        assert state.state.analyzing
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert lease.released
        assert not state.state.analyzing

    @pytest.mark.asyncio
    async def test_speak_false(self, pipeline, state, clock, player):
        result = await pipeline.run(state.try_acquire_cycle(clock(), 12.0), speak=False)
        assert result.success
        assert player.played == []

    def test_clear(self, pipeline):
        pipeline.latest = object()
        pipeline.clear()
        assert pipeline.latest is None

    @pytest.mark.asyncio
    async def test_clear_discards_cycle_in_flight(self, pipeline, state, clock, interpreter, player):
        interpreter.gate = asyncio.Event()
        cycle = asyncio.create_task(pipeline.run(state.try_acquire_cycle(clock(), 12.0)))
        await asyncio.sleep(0.01)

        pipeline.clear()
        interpreter.gate.set()
        result = await cycle

        assert result.success
        assert pipeline.latest is None
        assert player.played == []
        assert not state.state.analyzing


class TestOpenCamera:
    """Tests for open_camera() and the persistent camera error."""

    @pytest.mark.asyncio
    async def test_opens_device(self, pipeline, frame_source):
        assert await pipeline.open_camera() is True
        assert frame_source.opened == 1
        assert pipeline.camera_error is None

    @pytest.mark.asyncio
    async def test_no_camera(self, interpreter):
        pipeline = CaptureAndInterpretPipeline(None, interpreter)
        assert await pipeline.open_camera() is False
        assert pipeline.camera_error is None

    @pytest.mark.asyncio
    async def test_error_kept_until_camera_works(self, state, clock, interpreter, dispatcher):
        camera = MockFrameSource(fail=True)
        pipeline = CaptureAndInterpretPipeline(camera, interpreter, dispatcher, clock=clock)

        assert await pipeline.open_camera() is False
        assert "Check camera permissions" in pipeline.camera_error

        pipeline.clear()
        assert "Check camera permissions" in pipeline.camera_error

        camera.fail = False
        result = await pipeline.run(state.try_acquire_cycle(clock(), 12.0, ignore_cooldown=True))
        assert result.success
        assert pipeline.camera_error is None
