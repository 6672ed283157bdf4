"""
state.py — WorkflowState values.

Exactly one of these is active per workflow. They are immutable; the
orchestrator swaps the current value, nothing else touches it.

  Idle                       nothing selected
  Collecting(tab, draft_url) an input tab is open, user may be typing a URL
  Recording                  live capture in progress
  Analyzing(request)         one analysis in flight (single-flight)
  Completed(result)          terminal until reset
  Failed(error)              terminal until reset
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Union

from deepcheck.core.errors import DetectionError
from deepcheck.models.media import AnalysisRequest, AnalysisResult

InputTab = Literal["upload", "url"]


class Status(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    RECORDING = "recording"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Idle:
    status: Status = field(default=Status.IDLE, init=False)


@dataclass(frozen=True)
class Collecting:
    tab: InputTab = "upload"
    draft_url: str = ""
    status: Status = field(default=Status.COLLECTING, init=False)


@dataclass(frozen=True)
class Recording:
    status: Status = field(default=Status.RECORDING, init=False)


@dataclass(frozen=True)
class Analyzing:
    request: AnalysisRequest
    status: Status = field(default=Status.ANALYZING, init=False)


@dataclass(frozen=True)
class Completed:
    result: AnalysisResult
    status: Status = field(default=Status.COMPLETED, init=False)


@dataclass(frozen=True)
class Failed:
    error: DetectionError
    status: Status = field(default=Status.FAILED, init=False)


WorkflowState = Union[Idle, Collecting, Recording, Analyzing, Completed, Failed]


@dataclass(frozen=True)
class Transition:
    """One audited state change."""

    event: str  # e.g. "submit_url", "analysis_resolved", "reset"
    source: Status
    target: Status
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
