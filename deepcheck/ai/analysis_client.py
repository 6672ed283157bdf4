"""
analysis_client.py — The orchestrator's only door to a detection engine.

Wraps any AnalysisEngine and guarantees that what comes back is either an
in-contract AnalysisResult or one of the typed errors:

  - engine exceeds settings.analysis_timeout_seconds → NetworkError
  - engine raises a DetectionError                   → propagated unchanged
  - engine raises anything else                      → AnalysisEngineError
  - result fails validation / wrong source_type      → AnalysisEngineError

Cancellation (asyncio.CancelledError) is never converted — the orchestrator
relies on it to abandon an analysis on reset.
"""

import asyncio
import logging

from pydantic import ValidationError

from deepcheck.ai.engines import AnalysisEngine, build_engine
from deepcheck.core.config import settings
from deepcheck.core.errors import AnalysisEngineError, DetectionError, NetworkError
from deepcheck.models.media import AnalysisRequest, AnalysisResult

logger = logging.getLogger(__name__)


class AnalysisClient:
    def __init__(self, engine: AnalysisEngine | None = None, timeout: float | None = None) -> None:
        self.engine = engine or build_engine()
        self.timeout = timeout if timeout is not None else settings.analysis_timeout_seconds

    @property
    def engine_name(self) -> str:
        return self.engine.name

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        logger.info(
            "Analysing request %s with %s engine (source_type=%s)",
            request.request_id, self.engine.name, request.source_type,
        )
        try:
            result = await asyncio.wait_for(self.engine.analyze(request), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Engine %s timed out after %.1fs", self.engine.name, self.timeout)
            raise NetworkError(f"Analysis timed out after {self.timeout:g} seconds.") from exc
        except DetectionError:
            raise
        except ValidationError as exc:
            logger.error("Engine %s produced an out-of-range result: %s", self.engine.name, exc)
            raise AnalysisEngineError("Analysis engine produced an invalid result.") from exc
        except Exception as exc:
            logger.exception("Engine %s failed", self.engine.name)
            raise AnalysisEngineError(f"Analysis engine failed: {exc}") from exc

        return self._checked(request, result)

    def _checked(self, request: AnalysisRequest, result: AnalysisResult) -> AnalysisResult:
        try:
            # Re-validate: engines may hand back model_construct()ed or foreign objects.
            result = AnalysisResult.model_validate(
                result.model_dump() if isinstance(result, AnalysisResult) else result
            )
        except ValidationError as exc:
            raise AnalysisEngineError("Analysis engine produced an invalid result.") from exc

        if result.source_type != request.source_type:
            raise AnalysisEngineError(
                f"Engine reported source_type={result.source_type!r} "
                f"for a {request.source_type!r} request."
            )
        return result
