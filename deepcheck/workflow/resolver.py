"""
resolver.py — Normalise user input into a MediaSource and derive AnalysisRequests.

Three modalities:
  - File:      bytes + MIME type; MIME must be audio/* or video/*.
               Missing / generic MIME types fall back to the filename extension.
  - URL:       trimmed, must be an absolute http(s) URI. Never fetched here.
  - Recording: raw audio bytes from the recording capability.

Everything in this module is pure — no I/O, no engine calls.
"""

import logging
from typing import Any, Mapping
from urllib.parse import urlparse

from deepcheck.core.errors import InvalidInputError, UnsupportedMediaError
from deepcheck.models.media import (
    AnalysisRequest,
    FileSource,
    MediaSource,
    RecordingSource,
    SourceType,
    UrlSource,
)

logger = logging.getLogger(__name__)

_MIME_MAP = {
    ".mp3":  "audio/mpeg",
    ".wav":  "audio/wav",
    ".ogg":  "audio/ogg",
    ".m4a":  "audio/mp4",
    ".flac": "audio/flac",
    ".aac":  "audio/aac",
    ".mp4":  "video/mp4",
    ".webm": "video/webm",
    ".mov":  "video/quicktime",
    ".avi":  "video/x-msvideo",
    ".mkv":  "video/x-matroska",
}

_GENERIC_MIME = {"", "application/octet-stream", "binary/octet-stream"}
_URL_SCHEMES = {"http", "https"}


def mime_from_filename(filename: str) -> str:
    """Derive a MIME type from a filename extension."""
    ext = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return _MIME_MAP.get(ext, "application/octet-stream")


def _normalise_mime(mime_type: str | None) -> str:
    # "Video/MP4; codecs=avc1" -> "video/mp4"
    return (mime_type or "").split(";", 1)[0].strip().lower()


# ── Per-modality resolvers ─────────────────────────────────────────────────────

def resolve_file(blob: bytes | None, mime_type: str | None, filename: str = "upload") -> FileSource:
    if not blob:
        raise InvalidInputError("No file provided.")

    mime = _normalise_mime(mime_type)
    if mime in _GENERIC_MIME:
        mime = mime_from_filename(filename)

    if not mime.startswith(("audio/", "video/")):
        raise UnsupportedMediaError(
            f"Unsupported media type '{mime or 'unknown'}' — expected an audio or video file."
        )
    return FileSource(blob=blob, mime_type=mime, filename=filename or "upload")


def resolve_url(text: str | None) -> UrlSource:
    uri = (text or "").strip()
    if not uri:
        raise InvalidInputError("URL must not be empty.")

    parsed = urlparse(uri)
    if parsed.scheme.lower() not in _URL_SCHEMES or not parsed.netloc:
        raise InvalidInputError(f"'{uri}' is not a valid http(s) URL.")
    return UrlSource(uri=uri)


def resolve_recording(audio_blob: bytes | None) -> RecordingSource:
    if not audio_blob:
        raise InvalidInputError("Recording produced no audio.")
    return RecordingSource(audio_blob=audio_blob)


def resolve(raw: Mapping[str, Any]) -> MediaSource:
    """Dispatch on raw["kind"] ("file" | "url" | "recording")."""
    kind = raw.get("kind")
    if kind == "file":
        return resolve_file(raw.get("blob"), raw.get("mime_type"), raw.get("filename") or "upload")
    if kind == "url":
        return resolve_url(raw.get("uri"))
    if kind == "recording":
        return resolve_recording(raw.get("audio_blob"))
    raise InvalidInputError(f"Unknown input kind: {kind!r}")


# ── Request derivation ─────────────────────────────────────────────────────────

def source_type_of(source: MediaSource) -> SourceType:
    """video MIME / any URL → "video"; audio MIME / recording → "audio"."""
    if isinstance(source, FileSource):
        return "video" if source.mime_type.startswith("video/") else "audio"
    if isinstance(source, UrlSource):
        return "video"
    return "audio"


def build_request(source: MediaSource) -> AnalysisRequest:
    request = AnalysisRequest(source=source, source_type=source_type_of(source))
    logger.debug(
        "Built analysis request %s (kind=%s, source_type=%s)",
        request.request_id, source.kind, request.source_type,
    )
    return request
