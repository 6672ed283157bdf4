"""
detection.py — Detection workflow endpoints.

Routes (all under /api/v1/detection):
  POST   /sessions                      — open a new workflow session
  GET    /sessions/{id}                 — current state view (poll this)
  DELETE /sessions/{id}                 — drop the session, abandoning in-flight work
  POST   /sessions/{id}/tab             — open the upload / url input tab
  PUT    /sessions/{id}/draft-url       — store the URL text being typed
  POST   /sessions/{id}/file            — submit a base64 file → Analyzing
  POST   /sessions/{id}/url             — submit a URL → Analyzing
  POST   /sessions/{id}/recording       — start a live recording
  DELETE /sessions/{id}/recording       — cancel the recording
  POST   /sessions/{id}/reset           — back to Idle from anywhere

HOW THE DATA FLOWS
──────────────────
1. The client opens a session and submits a file, a URL, or a recording.
2. The workflow validates the input synchronously (422 / 415 on bad input —
   nothing is analysed) and answers 202 while the analysis runs in the
   background on the event loop.
3. The client polls GET /sessions/{id} until status is "completed" or
   "failed"; the view carries the presented result or error.
4. A submission while the session is analysing, recording, or holding a
   result is refused with 409 — reset first.

Errors are raised as DetectionError subclasses; main.py maps them to
JSON responses of the form {"detail": ..., "kind": ...}.
"""

import base64
import binascii
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from deepcheck.core.config import settings
from deepcheck.core.errors import InvalidInputError, SubmissionRejectedError
from deepcheck.core.rate_limit import limiter
from deepcheck.models.detection import (
    DraftUrlRequest,
    FileSubmission,
    SessionResponse,
    SubmissionResponse,
    TabRequest,
    UrlSubmission,
)
from deepcheck.services.sessions import SessionRegistry, get_registry
from deepcheck.workflow.orchestrator import DetectionWorkflow
from deepcheck.workflow.presenter import present_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/detection", tags=["detection"])


def _workflow(session_id: str, registry: SessionRegistry) -> DetectionWorkflow:
    workflow = registry.get(session_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return workflow


def _session(session_id: str, workflow: DetectionWorkflow) -> SessionResponse:
    return SessionResponse(session_id=session_id, state=present_state(workflow.state))


def _submitted(session_id: str, workflow: DetectionWorkflow, accepted: bool) -> SubmissionResponse:
    if not accepted:
        raise SubmissionRejectedError(
            f"Session is {workflow.state.status.value}; reset before submitting again."
        )
    return SubmissionResponse(session_id=session_id, accepted=True, state=present_state(workflow.state))


def _decode_b64(data: str) -> bytes:
    # Tolerate a full data: URL as well as the bare payload.
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInputError("file_b64 is not valid base64.") from exc


# ── Sessions ───────────────────────────────────────────────────────────────────

@router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    session_id, workflow = registry.create()
    return _session(session_id, workflow)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    return _session(session_id, _workflow(session_id, registry))


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if not registry.remove(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=204)


# ── Input collection ───────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/tab", response_model=SessionResponse)
async def open_tab(session_id: str, payload: TabRequest, registry: SessionRegistry = Depends(get_registry)):
    workflow = _workflow(session_id, registry)
    if not workflow.open_tab(payload.tab):
        raise SubmissionRejectedError(f"Cannot switch tabs while {workflow.state.status.value}.")
    return _session(session_id, workflow)


@router.put("/sessions/{session_id}/draft-url", response_model=SessionResponse)
async def set_draft_url(
    session_id: str, payload: DraftUrlRequest, registry: SessionRegistry = Depends(get_registry)
):
    workflow = _workflow(session_id, registry)
    if not workflow.set_draft_url(payload.url):
        raise SubmissionRejectedError(f"Cannot edit the URL while {workflow.state.status.value}.")
    return _session(session_id, workflow)


# ── Submission ─────────────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/file", response_model=SubmissionResponse, status_code=202)
@limiter.limit("20/minute")
async def submit_file(
    request: Request,
    session_id: str,
    payload: FileSubmission,
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Submit a base64-encoded audio/video file for deepfake analysis.

    415 when the MIME type (or filename extension fallback) is not audio/video,
    413 when the decoded file exceeds MAX_UPLOAD_BYTES.
    """
    workflow = _workflow(session_id, registry)
    blob = _decode_b64(payload.file_b64)
    if len(blob) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    accepted = workflow.submit_file(blob, payload.mime_type, payload.filename)
    return _submitted(session_id, workflow, accepted)


@router.post("/sessions/{session_id}/url", response_model=SubmissionResponse, status_code=202)
@limiter.limit("20/minute")
async def submit_url(
    request: Request,
    session_id: str,
    payload: UrlSubmission,
    registry: SessionRegistry = Depends(get_registry),
):
    """Submit a media URL. Empty input is rejected with 422 before any analysis starts."""
    workflow = _workflow(session_id, registry)
    accepted = workflow.submit_url(payload.url)
    return _submitted(session_id, workflow, accepted)


# ── Recording ──────────────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/recording", response_model=SubmissionResponse, status_code=202)
@limiter.limit("10/minute")
async def start_recording(
    request: Request, session_id: str, registry: SessionRegistry = Depends(get_registry)
):
    workflow = _workflow(session_id, registry)
    return _submitted(session_id, workflow, workflow.start_recording())


@router.delete("/sessions/{session_id}/recording", response_model=SessionResponse)
async def cancel_recording(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    workflow = _workflow(session_id, registry)
    if not workflow.cancel_recording():
        raise SubmissionRejectedError("No recording in progress.")
    return _session(session_id, workflow)


# ── Reset ──────────────────────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    workflow = _workflow(session_id, registry)
    workflow.reset()
    return _session(session_id, workflow)
