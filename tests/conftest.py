"""
pytest configuration and shared fixtures for the DeepCheck tests.

Key concern: tests must not require a Gemini API key, a remote detection
service, or real wall-clock recording time. We achieve this by:
  1. Setting AI_MOCK_MODE / ANALYSIS_ENGINE before anything imports Settings.
  2. Giving every API test a fresh SessionRegistry wired to a
     TrackingEngine (deterministic scores, requests remembered) and a
     near-instant recorder, swapped in via app.dependency_overrides.
  3. Resetting the rate limiter's in-memory counters between tests.
"""

import asyncio
import os

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("AI_MOCK_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ANALYSIS_ENGINE", "deterministic")

from deepcheck.ai.analysis_client import AnalysisClient  # noqa: E402
from deepcheck.ai.engines import FEATURES, AnalysisEngine, DeterministicAnalysisEngine  # noqa: E402
from deepcheck.models.media import AnalysisRequest, AnalysisResult, Feature  # noqa: E402
from deepcheck.services.recorder import Recorder, silent_wav  # noqa: E402


def make_result(source_type: str = "video", is_deepfake: bool = False, confidence: float = 91.0) -> AnalysisResult:
    return AnalysisResult(
        is_deepfake=is_deepfake,
        confidence=confidence,
        features=[Feature(name=name, value=90.0) for name, _ in FEATURES[source_type]],
        source_type=source_type,
    )


class TrackingEngine(DeterministicAnalysisEngine):
    """DeterministicAnalysisEngine that remembers every request it was handed."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.calls: list[AnalysisRequest] = []

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        self.calls.append(request)
        return await super().analyze(request)


class GatedEngine(AnalysisEngine):
    """
    Engine that blocks every call until the test opens its gate.

    With ignore_cancel=True it keeps going after being cancelled and returns
    a result anyway — a badly-behaved backend, used to prove that late
    outcomes are discarded by the workflow rather than by cancellation alone.
    """

    name = "gated"

    def __init__(self, fail_with: Exception | None = None, ignore_cancel: bool = False) -> None:
        self.fail_with = fail_with
        self.ignore_cancel = ignore_cancel
        self.calls: list[AnalysisRequest] = []
        self.gates: list[asyncio.Event] = []

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        self.calls.append(request)
        gate = asyncio.Event()
        self.gates.append(gate)
        try:
            await gate.wait()
        except asyncio.CancelledError:
            if not self.ignore_cancel:
                raise
        if self.fail_with is not None:
            raise self.fail_with
        return make_result(request.source_type)

    def release_all(self) -> None:
        for gate in self.gates:
            gate.set()


class InstantRecorder(Recorder):
    """Records for (almost) no time so recording tests stay fast."""

    def __init__(self, audio: bytes | None = None, fail_with: Exception | None = None) -> None:
        self.audio = silent_wav(0.01) if audio is None else audio
        self.fail_with = fail_with
        self.durations: list[float] = []

    async def record(self, duration: float) -> bytes:
        self.durations.append(duration)
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        return self.audio


async def settle(rounds: int = 5) -> None:
    """Let pending callbacks/tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def gated_engine():
    return GatedEngine()


@pytest.fixture()
async def registry():
    from deepcheck.services.sessions import SessionRegistry

    reg = SessionRegistry(
        client=AnalysisClient(TrackingEngine(), timeout=5),
        recorder=InstantRecorder(),
        max_sessions=10,
    )
    yield reg
    reg.clear()


@pytest.fixture()
async def client(registry):
    """
    HTTPX async test client wired to the FastAPI app with a fresh registry.

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from deepcheck.core.rate_limit import limiter
    from deepcheck.main import app
    from deepcheck.services.sessions import get_registry

    limiter.reset()
    app.dependency_overrides[get_registry] = lambda: registry

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.pop(get_registry, None)
