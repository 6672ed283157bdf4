"""
Tests for the DetectionWorkflow state machine.

Covers:
  - Tab / draft URL collection
  - File and URL submission → Analyzing → Completed / Failed
  - Single-flight: submissions while busy are no-ops
  - reset(): always legal, idempotent, clears everything
  - Stale-result guard: late outcomes never overwrite a newer state
  - Recording lifecycle: auto-analyse, discard, cancel, recorder failure
"""

import asyncio

import pytest
from conftest import GatedEngine, InstantRecorder, TrackingEngine, settle

from deepcheck.ai.analysis_client import AnalysisClient
from deepcheck.ai.engines import DeterministicAnalysisEngine
from deepcheck.core.errors import (
    AnalysisEngineError,
    InvalidInputError,
    NetworkError,
    RecordingError,
    UnsupportedMediaError,
)
from deepcheck.services.recorder import TimedRecorder
from deepcheck.workflow.orchestrator import DetectionWorkflow
from deepcheck.workflow.state import (
    Analyzing,
    Collecting,
    Completed,
    Failed,
    Idle,
    Recording,
    Status,
)

_VIDEO_URL = "https://example.com/v.mp4"


def _workflow(engine=None, recorder=None, **kwargs) -> DetectionWorkflow:
    return DetectionWorkflow(
        AnalysisClient(engine or DeterministicAnalysisEngine(), timeout=5),
        recorder=recorder or InstantRecorder(),
        **kwargs,
    )


# ── Input collection ───────────────────────────────────────────────────────────

class TestCollecting:
    def test_starts_idle(self):
        assert isinstance(_workflow().state, Idle)

    def test_open_tab_moves_to_collecting(self):
        wf = _workflow()
        assert wf.open_tab("url") is True
        assert wf.state == Collecting(tab="url")

    def test_switching_tab_keeps_draft_url(self):
        wf = _workflow()
        wf.set_draft_url("https://exa")
        wf.open_tab("upload")
        assert wf.state == Collecting(tab="upload", draft_url="https://exa")

    def test_unknown_tab_rejected(self):
        with pytest.raises(InvalidInputError):
            _workflow().open_tab("camera")

    def test_draft_url_from_idle_opens_url_tab(self):
        wf = _workflow()
        wf.set_draft_url("https://example.com")
        assert wf.state == Collecting(tab="url", draft_url="https://example.com")


# ── Submission ─────────────────────────────────────────────────────────────────

class TestSubmission:
    async def test_video_file_completes_with_video_result(self):
        wf = _workflow()
        wf.open_tab("upload")
        assert wf.submit_file(b"video-bytes", "video/mp4", "clip.mp4") is True
        assert isinstance(wf.state, Analyzing)

        state = await wf.wait_until_settled()
        assert isinstance(state, Completed)
        assert state.result.source_type == "video"

    async def test_audio_file_completes_with_audio_result(self):
        wf = _workflow()
        wf.submit_file(b"audio-bytes", "audio/mpeg", "voice.mp3")
        state = await wf.wait_until_settled()
        assert state.result.source_type == "audio"

    async def test_url_submission_completes_with_video_result(self):
        wf = _workflow()
        wf.open_tab("url")
        wf.submit_url(_VIDEO_URL)
        assert isinstance(wf.state, Analyzing)
        state = await wf.wait_until_settled()
        assert isinstance(state, Completed)
        assert state.result.source_type == "video"

    async def test_submit_url_defaults_to_draft(self):
        engine = TrackingEngine()
        wf = _workflow(engine)
        wf.set_draft_url(f"  {_VIDEO_URL} ")
        wf.submit_url()
        await wf.wait_until_settled()
        assert engine.calls[0].source.uri == _VIDEO_URL

    async def test_empty_url_blocked_before_any_call(self):
        engine = TrackingEngine()
        wf = _workflow(engine)
        wf.open_tab("url")
        with pytest.raises(InvalidInputError):
            wf.submit_url("")
        await settle()
        assert wf.state == Collecting(tab="url")
        assert engine.calls == []

    async def test_whitespace_draft_url_blocked(self):
        engine = TrackingEngine()
        wf = _workflow(engine)
        wf.set_draft_url("   ")
        with pytest.raises(InvalidInputError):
            wf.submit_url()
        assert isinstance(wf.state, Collecting)
        assert engine.calls == []

    async def test_unsupported_file_rejected_synchronously(self):
        engine = TrackingEngine()
        wf = _workflow(engine)
        wf.open_tab("upload")
        with pytest.raises(UnsupportedMediaError):
            wf.submit_file(b"png", "image/png", "photo.png")
        assert wf.state == Collecting(tab="upload")
        assert engine.calls == []

    async def test_engine_failure_becomes_failed_state(self):
        wf = _workflow(DeterministicAnalysisEngine(fail_with=NetworkError("offline")))
        wf.submit_url(_VIDEO_URL)
        state = await wf.wait_until_settled()
        assert isinstance(state, Failed)
        assert isinstance(state.error, NetworkError)
        assert state.error.kind == "network_error"

    async def test_unexpected_engine_exception_becomes_engine_error(self):
        wf = _workflow(GatedEngine(fail_with=RuntimeError("boom")))
        wf.submit_url(_VIDEO_URL)
        await settle()
        wf.client.engine.release_all()
        state = await wf.wait_until_settled()
        assert isinstance(state, Failed)
        assert isinstance(state.error, AnalysisEngineError)

    async def test_source_is_retained_until_reset(self):
        wf = _workflow()
        wf.submit_file(b"x", "video/mp4", "a.mp4")
        await wf.wait_until_settled()
        assert wf.source is not None and wf.source.kind == "file"
        wf.reset()
        assert wf.source is None


# ── Single-flight ──────────────────────────────────────────────────────────────

class TestSingleFlight:
    async def test_second_submission_while_analyzing_is_noop(self, gated_engine):
        wf = _workflow(gated_engine)
        assert wf.submit_url(_VIDEO_URL) is True
        first = wf.state
        await settle()

        assert wf.submit_file(b"x", "audio/wav", "a.wav") is False
        assert wf.submit_url("https://example.com/other.mp4") is False
        assert wf.start_recording() is False
        await settle()

        assert wf.state is first
        assert len(gated_engine.calls) == 1

    async def test_noop_even_with_invalid_input(self, gated_engine):
        # Busy check comes first: a refused submission never raises.
        wf = _workflow(gated_engine)
        wf.submit_url(_VIDEO_URL)
        assert wf.submit_url("") is False

    async def test_completed_requires_reset_before_resubmitting(self):
        engine = TrackingEngine()
        wf = _workflow(engine)
        wf.submit_url(_VIDEO_URL)
        await wf.wait_until_settled()

        assert wf.submit_url(_VIDEO_URL) is False
        assert wf.open_tab("upload") is False
        assert len(engine.calls) == 1

        wf.reset()
        assert wf.submit_url(_VIDEO_URL) is True
        await wf.wait_until_settled()
        assert len(engine.calls) == 2


# ── Reset and stale results ────────────────────────────────────────────────────

class TestReset:
    async def test_reset_from_every_state(self, gated_engine):
        wf = _workflow(gated_engine, recorder=TimedRecorder(), recording_duration=30)
        for setup in (
            lambda: None,
            lambda: wf.open_tab("url"),
            lambda: wf.set_draft_url("https://x.io"),
            wf.start_recording,
            lambda: wf.submit_url(_VIDEO_URL),
        ):
            setup()
            wf.reset()
            assert isinstance(wf.state, Idle)
            assert wf.source is None

    async def test_reset_is_idempotent(self):
        wf = _workflow()
        wf.open_tab("url")
        wf.reset()
        history_len = len(wf.history)
        wf.reset()
        wf.reset()
        assert isinstance(wf.state, Idle)
        assert len(wf.history) == history_len

    async def test_reset_clears_result_and_error(self):
        wf = _workflow(DeterministicAnalysisEngine(fail_with=AnalysisEngineError("bad")))
        wf.submit_url(_VIDEO_URL)
        assert isinstance(await wf.wait_until_settled(), Failed)
        wf.reset()
        assert wf.state == Idle()

    async def test_reset_while_analyzing_is_immediate(self, gated_engine):
        wf = _workflow(gated_engine)
        wf.submit_url(_VIDEO_URL)
        await settle()
        wf.reset()
        assert isinstance(wf.state, Idle)

        gated_engine.release_all()
        await settle()
        assert isinstance(wf.state, Idle)
        assert "analysis_resolved" not in [t.event for t in wf.history]

    async def test_late_result_ignoring_cancellation_is_discarded(self):
        engine = GatedEngine(ignore_cancel=True)
        wf = _workflow(engine)
        wf.submit_url(_VIDEO_URL)
        await settle()

        wf.reset()
        await settle()
        assert isinstance(wf.state, Idle)
        assert [t.event for t in wf.history][-1] == "reset"

    async def test_late_failure_is_discarded(self):
        engine = GatedEngine(fail_with=NetworkError("late"), ignore_cancel=True)
        wf = _workflow(engine)
        wf.submit_url(_VIDEO_URL)
        await settle()
        wf.reset()
        engine.release_all()
        await settle()
        assert isinstance(wf.state, Idle)

    async def test_stale_result_cannot_overwrite_newer_analysis(self):
        engine = GatedEngine(ignore_cancel=True)
        wf = _workflow(engine)
        wf.submit_url(_VIDEO_URL)
        await settle()
        wf.reset()

        wf.submit_file(b"audio", "audio/wav", "a.wav")
        second = wf.state
        await settle()
        # The abandoned first call has finished by now; the new analysis is untouched.
        assert wf.state is second

        engine.gates[-1].set()
        state = await wf.wait_until_settled()
        assert isinstance(state, Completed)
        assert state.result.source_type == "audio"


# ── Recording ──────────────────────────────────────────────────────────────────

class TestRecording:
    async def test_recording_auto_analyzes(self):
        recorder = InstantRecorder()
        wf = _workflow(recorder=recorder, recording_duration=5, auto_analyze_recordings=True)
        wf.open_tab("upload")
        assert wf.start_recording() is True
        assert isinstance(wf.state, Recording)

        state = await wf.wait_until_settled()
        assert isinstance(state, Completed)
        assert state.result.source_type == "audio"
        assert recorder.durations == [5]
        assert wf.source.kind == "recording"

        events = [t.event for t in wf.history]
        assert events[-3:] == ["start_recording", "recording_completed", "analysis_resolved"]

    async def test_recording_without_auto_analysis_returns_to_idle(self):
        engine = TrackingEngine()
        wf = _workflow(engine, auto_analyze_recordings=False)
        wf.start_recording()
        state = await wf.wait_until_settled()
        assert isinstance(state, Idle)
        assert engine.calls == []

    async def test_cancel_recording(self):
        engine = TrackingEngine()
        wf = _workflow(engine, recorder=TimedRecorder(), recording_duration=30)
        wf.start_recording()
        await settle()
        assert wf.cancel_recording() is True
        assert isinstance(wf.state, Idle)
        await asyncio.wait_for(wf.wait_until_settled(), timeout=1)
        assert engine.calls == []

    async def test_cancel_without_recording_is_false(self):
        assert _workflow().cancel_recording() is False

    async def test_recorder_failure_becomes_failed(self):
        wf = _workflow(recorder=InstantRecorder(fail_with=OSError("no microphone")))
        wf.start_recording()
        state = await wf.wait_until_settled()
        assert isinstance(state, Failed)
        assert isinstance(state.error, RecordingError)

    async def test_empty_recording_becomes_failed(self):
        wf = _workflow(recorder=InstantRecorder(audio=b""))
        wf.start_recording()
        state = await wf.wait_until_settled()
        assert isinstance(state, Failed)
        assert isinstance(state.error, InvalidInputError)

    async def test_reset_during_recording_discards_clip(self):
        engine = TrackingEngine()
        wf = _workflow(engine, recorder=TimedRecorder(), recording_duration=30)
        wf.start_recording()
        wf.reset()
        await settle()
        assert isinstance(wf.state, Idle)
        assert engine.calls == []


# ── Observability ──────────────────────────────────────────────────────────────

class TestListenersAndHistory:
    async def test_listener_sees_every_transition(self):
        seen = []
        wf = _workflow()
        unsubscribe = wf.subscribe(lambda t, s: seen.append((t.source, t.target)))
        wf.open_tab("url")
        wf.submit_url(_VIDEO_URL)
        await wf.wait_until_settled()
        unsubscribe()
        wf.reset()

        assert seen == [
            (Status.IDLE, Status.COLLECTING),
            (Status.COLLECTING, Status.ANALYZING),
            (Status.ANALYZING, Status.COMPLETED),
        ]

    async def test_failing_listener_does_not_break_workflow(self):
        wf = _workflow()

        def explode(transition, state):
            raise ValueError("listener bug")

        wf.subscribe(explode)
        wf.submit_url(_VIDEO_URL)
        assert isinstance(await wf.wait_until_settled(), Completed)

    def test_history_is_bounded(self):
        wf = _workflow(history_limit=3)
        for tab in ("url", "upload", "url", "upload", "url"):
            wf.open_tab(tab)
        assert len(wf.history) == 3
