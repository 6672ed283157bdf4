"""
media.py — Core data model for the detection workflow.

  MediaSource      — tagged union of the three input modalities (file / url / recording)
  AnalysisRequest  — immutable request derived from a MediaSource
  Feature          — one named evidence signal, scored 0–100
  AnalysisResult   — verdict + confidence + ordered evidence features

All models are frozen: once built they are only ever replaced, never mutated.
"""

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SourceType = Literal["audio", "video"]


# ── MediaSource variants ───────────────────────────────────────────────────────

class FileSource(BaseModel):
    """An uploaded or dropped audio/video file."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    blob: bytes = Field(repr=False)
    mime_type: str
    filename: str = "upload"


class UrlSource(BaseModel):
    """A remote media link. Never fetched by the resolver itself."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["url"] = "url"
    uri: str


class RecordingSource(BaseModel):
    """Audio captured from the live recording capability."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["recording"] = "recording"
    audio_blob: bytes = Field(repr=False)
    mime_type: str = "audio/wav"


MediaSource = Annotated[
    Union[FileSource, UrlSource, RecordingSource],
    Field(discriminator="kind"),
]


# ── Request ────────────────────────────────────────────────────────────────────

class AnalysisRequest(BaseModel):
    """What the analysis client receives. Consumed once, then discarded."""

    model_config = ConfigDict(frozen=True)

    source: MediaSource
    source_type: SourceType
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)


# ── Result ─────────────────────────────────────────────────────────────────────

class Feature(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)  # e.g. "Spectral Consistency"
    value: float = Field(..., ge=0.0, le=100.0)


class AnalysisResult(BaseModel):
    """
    Outcome of one analysis.

    Invariants enforced on construction:
      - confidence and every feature value lie in [0, 100]
      - features is non-empty and keeps the engine's order (display order matters)
    """

    model_config = ConfigDict(frozen=True)

    is_deepfake: bool
    confidence: float = Field(..., ge=0.0, le=100.0)
    features: tuple[Feature, ...] = Field(..., min_length=1)
    source_type: SourceType

    @field_validator("features", mode="before")
    @classmethod
    def _as_tuple(cls, value):
        # Accept any ordered sequence (JSON list, generator output) without resorting.
        if isinstance(value, (list, tuple)):
            return tuple(value)
        return value
