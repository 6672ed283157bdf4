"""
errors.py — Error taxonomy for the detection workflow.

  DetectionError
    ├── InvalidInputError        malformed / empty URL, empty blob
    │     └── UnsupportedMediaError   MIME type is not audio/* or video/*
    ├── NetworkError             transport failure reaching the engine or media host
    ├── AnalysisEngineError      engine-side failure or contract violation
    ├── RecordingError           the recording capability failed
    └── SubmissionRejectedError  workflow refused a submission (busy / wrong state)

Every error carries a short machine-readable `kind` so the presenter and the
HTTP layer can render it without isinstance chains.
"""


class DetectionError(Exception):
    """Base class for every recoverable workflow error."""

    kind = "detection_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class InvalidInputError(DetectionError):
    kind = "invalid_input"


class UnsupportedMediaError(InvalidInputError):
    kind = "unsupported_media"


class NetworkError(DetectionError):
    kind = "network_error"


class AnalysisEngineError(DetectionError):
    kind = "analysis_engine_error"


class RecordingError(DetectionError):
    kind = "recording_error"


class SubmissionRejectedError(DetectionError):
    kind = "submission_rejected"
