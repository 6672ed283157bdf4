"""
engines.py — Pluggable AnalysisEngine implementations.

Every engine honours the same contract:

    async analyze(request: AnalysisRequest) -> AnalysisResult

and signals failure only through the error taxonomy in core/errors.py
(NetworkError, AnalysisEngineError, UnsupportedMediaError). The
AnalysisClient re-checks the returned result, so engines can't leak an
out-of-contract value into the workflow.

Implementations:
  - DeterministicAnalysisEngine — reproducible scores derived from a digest of
    the payload. Test double and offline default.
  - GeminiAnalysisEngine — one multimodal probe per evidence feature (run in
    parallel) followed by a synthesiser call that issues the verdict.
  - RemoteAnalysisEngine — delegates to an external detection service over HTTP.

Feature values everywhere read as "consistency with genuine media":
100 = the signal looks entirely natural, 0 = the signal is clearly synthetic.
"""

import asyncio
import base64
import hashlib
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

import httpx
from pydantic import ValidationError

from deepcheck.ai.gemini_client import MAX_INLINE_B64, GeminiClient, gemini_client
from deepcheck.core.config import settings
from deepcheck.core.errors import (
    AnalysisEngineError,
    DetectionError,
    NetworkError,
    UnsupportedMediaError,
)
from deepcheck.models.media import (
    AnalysisRequest,
    AnalysisResult,
    Feature,
    FileSource,
    MediaSource,
    RecordingSource,
    SourceType,
    UrlSource,
)
from deepcheck.services.media_fetcher import FetchedMedia, fetch_media

logger = logging.getLogger(__name__)


# ── Evidence features per modality (display order is significant) ─────────────

FEATURES: dict[SourceType, tuple[tuple[str, str], ...]] = {
    "audio": (
        ("Spectral Consistency", "smoothed spectral envelopes and neural-vocoder fingerprints"),
        ("Micro-timing Analysis", "unnaturally regular pauses, rhythm and co-articulation timing"),
        ("Vocal Biomarkers", "breath sounds, timbre stability and natural pitch jitter"),
        ("Synthetic Artifacts", "TTS / voice-clone artefacts such as metallic ringing or phase noise"),
    ),
    "video": (
        ("Visual Artifacts", "GAN fingerprints, blending halos and compression inconsistencies"),
        ("Facial Movement", "unnatural head pose, eye-blink and micro-expression dynamics"),
        ("Lip Sync Accuracy", "drift between mouth shapes and the audio track"),
        ("Frame Consistency", "inter-frame flicker and jumps in lighting or identity"),
    ),
}


class AnalysisEngine(ABC):
    """Opaque detection backend. Latency, ordering and retries are its own business."""

    name: str = "base"

    @abstractmethod
    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Analyse one request; raise a DetectionError subclass on failure."""


def _payload_bytes(source: MediaSource) -> bytes:
    if isinstance(source, FileSource):
        return source.blob
    if isinstance(source, RecordingSource):
        return source.audio_blob
    return source.uri.encode()


# ── Deterministic ─────────────────────────────────────────────────────────────

class DeterministicAnalysisEngine(AnalysisEngine):
    """
    Reproducible engine: the same payload always yields the same result.

    Args:
        delay:     seconds to sleep before answering (exercises the async path).
        fail_with: if set, raised instead of returning a result.
        verdict:   force is_deepfake; None derives it from the payload digest.
    """

    name = "deterministic"

    def __init__(
        self,
        delay: float = 0.0,
        fail_with: DetectionError | None = None,
        verdict: bool | None = None,
    ) -> None:
        self.delay = delay
        self.fail_with = fail_with
        self.verdict = verdict

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

        digest = hashlib.sha256(_payload_bytes(request.source)).digest()
        features = [
            # 60.0 – 99.9 in steps of 0.1
            Feature(name=name, value=60 + (int.from_bytes(digest[i * 2: i * 2 + 2], "big") % 400) / 10)
            for i, (name, _) in enumerate(FEATURES[request.source_type])
        ]
        confidence = round(sum(f.value for f in features) / len(features), 1)
        is_deepfake = self.verdict if self.verdict is not None else digest[-1] % 10 >= 7

        return AnalysisResult(
            is_deepfake=is_deepfake,
            confidence=confidence,
            features=features,
            source_type=request.source_type,
        )


# ── Gemini ────────────────────────────────────────────────────────────────────

_PROBE_PROMPT = """\
You are an expert media forensics analyst specialising in synthetic {modality} detection.

Focus on ONE signal only: {feature}.
Look specifically for: {focus}.

Respond with valid JSON only:
{{
  "score": <0.0 = definitely genuine, 1.0 = definitely manipulated>,
  "findings": ["specific observation 1", "specific observation 2"],
  "summary": "one sentence verdict for this signal"
}}"""

_SYNTH_PROMPT = """\
You are the final adjudicator in a deepfake detection pipeline for a {modality} sample.

Specialist probes have already scored these signals (0 = genuine, 1 = manipulated):
{probe_lines}

Examine the media yourself, weigh the probe scores, and give the final verdict.

Respond with valid JSON only:
{{
  "is_fake": <true|false>,
  "confidence": <0.0-1.0 certainty in your verdict>,
  "reasoning": "2–3 sentences explaining the verdict"
}}"""


def _parse_json(raw: str) -> dict | None:
    """Extract and parse the first JSON object found in `raw`."""
    m = re.search(r"\{[\s\S]*\}", raw or "")
    if not m:
        return None
    try:
        data = json.loads(m.group())
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _clamp(value, lo: float = 0.0, hi: float = 1.0) -> float:
    try:
        return max(lo, min(hi, float(value)))
    except (TypeError, ValueError):
        return 0.5


Fetcher = Callable[[str], Awaitable[FetchedMedia]]


class GeminiAnalysisEngine(AnalysisEngine):
    """Parallel per-feature probes + synthesiser, all via GeminiClient.generate_with_vision."""

    name = "gemini"

    def __init__(self, client: GeminiClient | None = None, fetcher: Fetcher = fetch_media) -> None:
        self.client = client or gemini_client
        self.fetcher = fetcher

    async def _media(self, request: AnalysisRequest) -> tuple[str, str]:
        source = request.source
        if isinstance(source, FileSource):
            return base64.b64encode(source.blob).decode(), source.mime_type
        if isinstance(source, RecordingSource):
            return base64.b64encode(source.audio_blob).decode(), source.mime_type
        if self.client.mock_mode:
            # Canned responses ignore the payload; skip the download.
            return "", "video/mp4"
        fetched = await self.fetcher(source.uri)
        return base64.b64encode(fetched.content).decode(), fetched.mime_type

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        modality = request.source_type
        media_b64, mime_type = await self._media(request)
        if len(media_b64) > MAX_INLINE_B64:
            raise UnsupportedMediaError(
                f"Media is too large for Gemini inline analysis ({len(media_b64)} base64 chars, "
                f"limit {MAX_INLINE_B64})."
            )
        logger.info(
            "Starting %s Gemini pipeline (mime=%s, size=%d chars)", modality, mime_type, len(media_b64)
        )

        specs = FEATURES[modality]
        try:
            probe_raws = await asyncio.gather(*(
                self.client.generate_with_vision(
                    _PROBE_PROMPT.format(modality=modality, feature=name, focus=focus),
                    media_b64, mime_type, response_key="deepfake_probe",
                )
                for name, focus in specs
            ))
        except DetectionError:
            raise
        except Exception as exc:
            raise AnalysisEngineError(f"Gemini probe failed: {exc}") from exc

        scores = []
        for (name, _), raw in zip(specs, probe_raws):
            probe = _parse_json(raw)
            if probe is None:
                logger.warning("Unparseable probe output for %s — scoring neutral", name)
                scores.append(0.5)
            else:
                scores.append(_clamp(probe.get("score", 0.5)))

        probe_lines = "\n".join(f"  - {name}: {score:.2f}" for (name, _), score in zip(specs, scores))
        try:
            synth_raw = await self.client.generate_with_vision(
                _SYNTH_PROMPT.format(modality=modality, probe_lines=probe_lines),
                media_b64, mime_type, response_key=f"deepfake_{modality}",
            )
        except Exception as exc:
            raise AnalysisEngineError(f"Gemini synthesis failed: {exc}") from exc

        synth = _parse_json(synth_raw)
        if synth is None or "is_fake" not in synth:
            raise AnalysisEngineError("Unable to parse the synthesis verdict.")

        logger.info(
            "Gemini %s pipeline complete: is_fake=%s confidence=%s",
            modality, synth.get("is_fake"), synth.get("confidence"),
        )
        return AnalysisResult(
            is_deepfake=bool(synth["is_fake"]),
            confidence=round(_clamp(synth.get("confidence", 0.5)) * 100, 1),
            features=[
                Feature(name=name, value=round((1.0 - score) * 100, 1))
                for (name, _), score in zip(specs, scores)
            ],
            source_type=modality,
        )


# ── Remote HTTP service ───────────────────────────────────────────────────────

class RemoteAnalysisEngine(AnalysisEngine):
    """
    POSTs the request to an external detection service and expects an
    AnalysisResult-shaped JSON body back.
    """

    name = "remote"

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url if url is not None else settings.remote_engine_url
        self.api_key = api_key if api_key is not None else settings.remote_engine_api_key
        self.http_client = http_client
        if not self.url:
            raise AnalysisEngineError("REMOTE_ENGINE_URL is not configured.")

    def _body(self, request: AnalysisRequest) -> dict:
        source = request.source
        body = {
            "request_id": request.request_id,
            "source_type": request.source_type,
            "kind": source.kind,
        }
        if isinstance(source, UrlSource):
            body["uri"] = source.uri
        else:
            body["media_b64"] = base64.b64encode(_payload_bytes(source)).decode()
            body["mime_type"] = source.mime_type
        return body

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        client = self.http_client or httpx.AsyncClient(timeout=settings.analysis_timeout_seconds)
        try:
            resp = await client.post(self.url, json=self._body(request), headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Remote engine unreachable (%s): %s", self.url, exc)
            raise NetworkError(f"Could not reach the analysis service: {exc.__class__.__name__}.") from exc
        finally:
            if self.http_client is None:
                await client.aclose()

        if resp.status_code >= 400:
            logger.error("Remote engine returned HTTP %d", resp.status_code)
            raise AnalysisEngineError(f"Analysis service returned HTTP {resp.status_code}.")

        try:
            return AnalysisResult.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise AnalysisEngineError("Analysis service returned an invalid result.") from exc


# ── Factory ───────────────────────────────────────────────────────────────────

def build_engine(name: str | None = None) -> AnalysisEngine:
    """Build the engine selected by name (defaults to settings.analysis_engine)."""
    name = (name or settings.analysis_engine).strip().lower()
    if name == "deterministic":
        return DeterministicAnalysisEngine()
    if name == "gemini":
        return GeminiAnalysisEngine()
    if name == "remote":
        return RemoteAnalysisEngine()
    raise ValueError(f"Unknown analysis engine: {name!r}")
