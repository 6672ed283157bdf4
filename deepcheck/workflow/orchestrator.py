"""
orchestrator.py — The detection workflow state machine.

One DetectionWorkflow per user session. It owns the single WorkflowState
value and is the only thing allowed to replace it:

  Idle            -> Collecting   open_tab / set_draft_url
  Idle|Collecting -> Analyzing    submit_file / submit_url
  Idle|Collecting -> Recording    start_recording
  Recording       -> Analyzing    recording finished (auto-analyse on)
  Recording       -> Idle         recording finished (auto-analyse off) / cancel_recording
  Recording       -> Failed       recorder raised
  Analyzing       -> Completed    analysis client resolved
  Analyzing       -> Failed       analysis client rejected
  any             -> Idle         reset

Concurrency: everything runs on one event loop. The analysis call and the
recording wait are the only suspension points; each runs in its own
asyncio.Task stamped with the generation number current at launch. A task
may only apply its outcome while that generation is still current, and
reset() / cancel_recording() bump it, so an abandoned analysis can never
overwrite a newer state.

Submissions are synchronous calls that schedule work on the running loop,
so they must be made from inside a coroutine (route handler, test, etc.).
"""

import asyncio
import logging
from collections import deque
from typing import Callable

from deepcheck.ai.analysis_client import AnalysisClient
from deepcheck.core.config import settings
from deepcheck.core.errors import (
    AnalysisEngineError,
    DetectionError,
    InvalidInputError,
    RecordingError,
)
from deepcheck.models.media import AnalysisRequest, MediaSource
from deepcheck.services.recorder import Recorder, TimedRecorder
from deepcheck.workflow import resolver
from deepcheck.workflow.state import (
    Analyzing,
    Collecting,
    Completed,
    Failed,
    Idle,
    InputTab,
    Recording,
    Transition,
    WorkflowState,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Transition, WorkflowState], None]

_TABS = ("upload", "url")


class DetectionWorkflow:
    def __init__(
        self,
        client: AnalysisClient,
        recorder: Recorder | None = None,
        recording_duration: float | None = None,
        auto_analyze_recordings: bool | None = None,
        history_limit: int | None = None,
    ) -> None:
        self.client = client
        self.recorder = recorder or TimedRecorder()
        self.recording_duration = (
            recording_duration if recording_duration is not None else settings.recording_duration_seconds
        )
        self.auto_analyze_recordings = (
            auto_analyze_recordings if auto_analyze_recordings is not None
            else settings.recording_auto_analyze
        )

        self._state: WorkflowState = Idle()
        self._source: MediaSource | None = None
        self._generation = 0
        self._analysis_task: asyncio.Task | None = None
        self._recording_task: asyncio.Task | None = None
        self._history: deque[Transition] = deque(maxlen=history_limit or settings.history_limit)
        self._listeners: list[Listener] = []

    # ── Read-only views ────────────────────────────────────────────────────────

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def source(self) -> MediaSource | None:
        """The MediaSource behind the current/last analysis, until reset."""
        return self._source

    @property
    def history(self) -> list[Transition]:
        return list(self._history)

    @property
    def busy(self) -> bool:
        return isinstance(self._state, (Analyzing, Recording))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(transition, new_state)` after every transition. Returns an unsubscribe fn."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Core transition ────────────────────────────────────────────────────────

    def _transition(self, new_state: WorkflowState, event: str) -> None:
        transition = Transition(event=event, source=self._state.status, target=new_state.status)
        self._state = new_state
        self._history.append(transition)
        logger.info("Workflow %s: %s -> %s", event, transition.source.value, transition.target.value)

        for listener in list(self._listeners):
            try:
                listener(transition, new_state)
            except Exception:
                logger.exception("Workflow listener failed on %s", event)

    def _accepts_submission(self, event: str) -> bool:
        if isinstance(self._state, (Idle, Collecting)):
            return True
        logger.warning("Ignoring %s while %s", event, self._state.status.value)
        return False

    # ── Input collection ───────────────────────────────────────────────────────

    def open_tab(self, tab: InputTab) -> bool:
        if tab not in _TABS:
            raise InvalidInputError(f"Unknown input tab: {tab!r}")
        if isinstance(self._state, Collecting):
            if self._state.tab != tab:
                self._transition(Collecting(tab=tab, draft_url=self._state.draft_url), "open_tab")
            return True
        if isinstance(self._state, Idle):
            self._transition(Collecting(tab=tab), "open_tab")
            return True
        logger.warning("Ignoring open_tab(%s) while %s", tab, self._state.status.value)
        return False

    def set_draft_url(self, text: str) -> bool:
        """Record the URL the user is typing. No validation until submit."""
        if isinstance(self._state, (Idle, Collecting)):
            self._transition(Collecting(tab="url", draft_url=text), "edit_url")
            return True
        logger.warning("Ignoring draft URL edit while %s", self._state.status.value)
        return False

    # ── Submission ─────────────────────────────────────────────────────────────

    def submit_file(self, blob: bytes, mime_type: str | None, filename: str = "upload") -> bool:
        """
        Submit an uploaded/dropped file.

        Returns False (no-op) when the workflow is busy or finished.
        Raises InvalidInputError / UnsupportedMediaError before any async work.
        """
        if not self._accepts_submission("submit_file"):
            return False
        source = resolver.resolve_file(blob, mime_type, filename)
        self._begin_analysis(source, "submit_file")
        return True

    def submit_url(self, text: str | None = None) -> bool:
        """
        Submit a remote URL. Defaults to the draft URL typed so far.

        Empty / whitespace-only input raises InvalidInputError and leaves the
        state untouched — no analysis call is made.
        """
        if not self._accepts_submission("submit_url"):
            return False
        if text is None and isinstance(self._state, Collecting):
            text = self._state.draft_url
        source = resolver.resolve_url(text)
        self._begin_analysis(source, "submit_url")
        return True

    def _begin_analysis(self, source: MediaSource, event: str) -> None:
        request = resolver.build_request(source)
        self._generation += 1
        generation = self._generation
        self._source = source
        self._transition(Analyzing(request=request), event)
        self._analysis_task = asyncio.create_task(
            self._run_analysis(request, generation), name=f"analysis-{request.request_id}"
        )

    async def _run_analysis(self, request: AnalysisRequest, generation: int) -> None:
        try:
            result = await self.client.analyze(request)
        except DetectionError as exc:
            outcome, event = Failed(error=exc), "analysis_rejected"
        except Exception as exc:
            logger.exception("Unexpected analysis failure for %s", request.request_id)
            outcome, event = Failed(error=AnalysisEngineError(str(exc))), "analysis_rejected"
        else:
            outcome, event = Completed(result=result), "analysis_resolved"

        if not self._owns(generation, Analyzing) or self._state.request is not request:
            logger.info("Discarding stale analysis outcome for %s", request.request_id)
            return
        self._analysis_task = None
        self._transition(outcome, event)

    def _owns(self, generation: int, state_type: type) -> bool:
        return generation == self._generation and isinstance(self._state, state_type)

    # ── Recording ──────────────────────────────────────────────────────────────

    def start_recording(self) -> bool:
        if not self._accepts_submission("start_recording"):
            return False
        self._generation += 1
        generation = self._generation
        self._transition(Recording(), "start_recording")
        self._recording_task = asyncio.create_task(
            self._run_recording(generation), name=f"recording-{generation}"
        )
        return True

    async def _run_recording(self, generation: int) -> None:
        try:
            audio = await self.recorder.record(self.recording_duration)
        except DetectionError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Recorder failed")
            error = RecordingError(f"Recording failed: {exc}")
        else:
            error = None

        if not self._owns(generation, Recording):
            logger.info("Discarding stale recording (generation %d)", generation)
            return
        self._recording_task = None

        if error is not None:
            self._transition(Failed(error=error), "recording_failed")
            return

        try:
            source = resolver.resolve_recording(audio)
        except InvalidInputError as exc:
            self._transition(Failed(error=exc), "recording_failed")
            return

        if self.auto_analyze_recordings:
            self._begin_analysis(source, "recording_completed")
        else:
            logger.info("Recording complete; auto-analysis disabled, discarding clip")
            self._transition(Idle(), "recording_completed")

    def cancel_recording(self) -> bool:
        if not isinstance(self._state, Recording):
            return False
        self._generation += 1
        self._cancel(self._recording_task)
        self._recording_task = None
        self._transition(Idle(), "cancel_recording")
        return True

    # ── Reset ──────────────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Return to Idle from anywhere, abandoning any in-flight work. Idempotent."""
        self._generation += 1
        self._cancel(self._analysis_task)
        self._cancel(self._recording_task)
        self._analysis_task = None
        self._recording_task = None
        self._source = None
        if not isinstance(self._state, Idle):
            self._transition(Idle(), "reset")

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:  # no running loop
            current = None
        if task is not current:
            task.cancel()

    async def wait_until_settled(self) -> WorkflowState:
        """Wait for in-flight recording/analysis tasks (a recording may chain into an analysis)."""
        while True:
            pending = [t for t in (self._recording_task, self._analysis_task) if t is not None and not t.done()]
            if not pending:
                return self._state
            await asyncio.wait(pending)
