"""
detection.py — Pydantic request/response models for the detection API.

Files travel as base64 in JSON (the front-end reads them with
FileReader.readAsDataURL() and strips the "data:...;base64," prefix), so
no multipart handling is needed.
"""

from typing import Literal

from pydantic import BaseModel, Field

from deepcheck.workflow.presenter import WorkflowView


# ── Request models ─────────────────────────────────────────────────────────────

class TabRequest(BaseModel):
    tab: Literal["upload", "url"]


class DraftUrlRequest(BaseModel):
    url: str = Field(default="", description="URL text as currently typed (unvalidated)")


class FileSubmission(BaseModel):
    """Base64-encoded audio/video file submitted for analysis."""

    file_b64: str = Field(..., min_length=1, description="Base64-encoded media data")
    filename: str = Field(default="upload", description="Original filename (used as MIME hint)")
    mime_type: str | None = Field(default=None, description="Browser-reported MIME type")


class UrlSubmission(BaseModel):
    url: str | None = Field(
        default=None, description="Media URL; omitted means the session's draft URL"
    )


# ── Response models ────────────────────────────────────────────────────────────

class SessionResponse(BaseModel):
    session_id: str
    state: WorkflowView


class SubmissionResponse(BaseModel):
    session_id: str
    accepted: bool
    state: WorkflowView
