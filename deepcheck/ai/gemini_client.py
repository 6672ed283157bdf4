"""
GeminiClient — Async wrapper around Google Generative AI SDK.

Used by the Gemini analysis engine for multimodal probes (the media bytes
are sent inline alongside the prompt).

Supports two runtime modes (set via AI_MOCK_MODE env var):
  - MOCK mode (default): returns deterministic canned responses.
    Use for tests and local dev without API keys.
  - REAL mode: makes actual Gemini API calls.
    Requires GEMINI_API_KEY to be set.

Extension pattern: add new mock response keys to _MOCK_RESPONSES and
reference them in generate_with_vision() calls via the response_key parameter.
"""

import logging
import os
from enum import Enum

# Python 3.14 + protobuf native extension can fail when importing Gemini deps.
# Keep this as default-only so users can still override it explicitly.
os.environ.setdefault("PROTOCOL_BUFFERS_PYTHON_IMPLEMENTATION", "python")

import google.generativeai as genai

from deepcheck.core.config import settings

# Max base64 chars accepted as inline media data (~11 MB original file).
MAX_INLINE_B64 = 15_000_000

logger = logging.getLogger(__name__)


class GeminiModel(str, Enum):
    PRO = "gemini-2.5-pro"


# Canned responses for mock mode.
# Keys map to response_key arguments in generate_with_vision() calls.
_MOCK_RESPONSES: dict[str, str] = {
    "default": (
        "[MOCK] This is a placeholder Gemini response. "
        "Set AI_MOCK_MODE=false and provide GEMINI_API_KEY for real responses."
    ),
    # Returned by every per-feature probe
    "deepfake_probe": (
        '{"score": 0.12, '
        '"findings": ["No synthetic manipulation indicators detected in this analysis pass."], '
        '"summary": "Signal consistent with genuine media."}'
    ),
    # Synthesis mocks — final verdict from the synthesiser step
    "deepfake_audio": (
        '{"is_fake": false, "confidence": 0.88, '
        '"reasoning": "[MOCK] Prosody patterns and spectral characteristics are consistent '
        'with natural human speech. No TTS or voice-cloning fingerprints detected."}'
    ),
    "deepfake_video": (
        '{"is_fake": false, "confidence": 0.86, '
        '"reasoning": "[MOCK] No inter-frame flickering, blending boundary shifts, or '
        'lip-sync drift consistent with deepfake manipulation were detected."}'
    ),
}


class GeminiClient:
    """
    Central Gemini interface for the analysis engines.

    Don't instantiate per-request; use the module-level `gemini_client`
    singleton (tests may build their own).
    """

    def __init__(self) -> None:
        self.mock_mode = settings.ai_mock_mode

        if not self.mock_mode:
            if not settings.gemini_api_key:
                logger.warning(
                    "GEMINI_API_KEY not set — falling back to mock mode. "
                    "Set AI_MOCK_MODE=true to silence this warning."
                )
                self.mock_mode = True
            else:
                genai.configure(api_key=settings.gemini_api_key)
                self._genai = genai

        if self.mock_mode:
            logger.info("GeminiClient initialised in MOCK mode")
        else:
            logger.info("GeminiClient initialised in REAL mode (model: %s)", GeminiModel.PRO.value)

    async def generate_with_vision(
        self,
        prompt: str,
        media_b64: str,
        mime_type: str,
        response_key: str = "default",
    ) -> str:
        """
        Multimodal analysis — sends the actual audio/video bytes inline to Gemini.

        Raises ValueError if the payload exceeds MAX_INLINE_B64 chars; the
        model is never asked to judge media it cannot see.
        """
        if self.mock_mode:
            return _MOCK_RESPONSES.get(response_key, _MOCK_RESPONSES["default"])

        if len(media_b64) > MAX_INLINE_B64:
            raise ValueError(
                f"Media too large for inline analysis ({len(media_b64)} chars > {MAX_INLINE_B64} limit)"
            )

        try:
            gemini_model = self._genai.GenerativeModel(GeminiModel.PRO.value)
            contents = [
                {"text": prompt},
                {"inline_data": {"mime_type": mime_type, "data": media_b64}},
            ]
            response = await gemini_model.generate_content_async(contents)
            return response.text
        except Exception as exc:
            logger.error("Gemini multimodal API error (mime=%s): %s", mime_type, exc)
            raise


# Module-level singleton — import and use this everywhere
gemini_client = GeminiClient()
