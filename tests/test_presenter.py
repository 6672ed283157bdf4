"""
Tests for the results presenter — pure projections, no event loop.
"""

from conftest import make_result

from deepcheck.core.errors import NetworkError
from deepcheck.models.media import AnalysisResult
from deepcheck.workflow.presenter import present, present_error, present_state
from deepcheck.workflow.resolver import build_request, resolve_url
from deepcheck.workflow.state import Analyzing, Collecting, Completed, Failed, Idle, Recording


class TestPresent:
    def test_video_result(self):
        view = present(make_result("video", is_deepfake=True, confidence=87.4))
        assert view.verdict == "Likely Deepfake"
        assert view.confidence == 87
        assert view.confidence_label == "87% confidence"
        assert view.source_label == "Video analysis"
        assert view.show_video_preview is True

    def test_audio_result(self):
        view = present(make_result("audio", is_deepfake=False))
        assert view.verdict == "Likely Authentic"
        assert view.source_label == "Audio analysis"
        assert view.show_video_preview is False

    def test_feature_order_is_kept(self):
        result = AnalysisResult(
            is_deepfake=False,
            confidence=80,
            features=[{"name": "Zulu", "value": 10}, {"name": "Alpha", "value": 99.6}, {"name": "Mike", "value": 50}],
            source_type="audio",
        )
        view = present(result)
        assert [f.name for f in view.features] == ["Zulu", "Alpha", "Mike"]
        assert [f.label for f in view.features] == ["10%", "100%", "50%"]

    def test_input_not_mutated(self):
        result = make_result("video")
        before = result.model_dump()
        present(result)
        assert result.model_dump() == before


class TestPresentState:
    def test_idle(self):
        view = present_state(Idle())
        assert view.status == "idle"
        assert view.result is None and view.error is None

    def test_collecting_carries_draft(self):
        view = present_state(Collecting(tab="url", draft_url="https://x"))
        assert view.tab == "url"
        assert view.draft_url == "https://x"

    def test_busy_states(self):
        request = build_request(resolve_url("https://example.com/v.mp4"))
        assert present_state(Analyzing(request=request)).busy is True
        assert present_state(Recording()).busy is True

    def test_completed_has_result(self):
        view = present_state(Completed(result=make_result("video")))
        assert view.status == "completed"
        assert view.result.source_type == "video"

    def test_failed_has_error_kind(self):
        view = present_state(Failed(error=NetworkError("engine unreachable")))
        assert view.status == "failed"
        assert view.error.kind == "network_error"
        assert view.error.message == "engine unreachable"

    def test_present_error(self):
        assert present_error(NetworkError()).message == "NetworkError"
