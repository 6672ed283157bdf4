"""
presenter.py — Pure projections from workflow values to display-ready views.

Nothing here mutates its input. Feature order is passed through untouched:
the engine's order is the display order.
"""

from pydantic import BaseModel

from deepcheck.core.errors import DetectionError
from deepcheck.models.media import AnalysisResult, SourceType
from deepcheck.workflow.state import (
    Analyzing,
    Collecting,
    Completed,
    Failed,
    Recording,
    WorkflowState,
)


class FeatureView(BaseModel):
    name: str
    value: float
    label: str  # "92%"


class ResultView(BaseModel):
    is_deepfake: bool
    verdict: str            # "Likely Deepfake" | "Likely Authentic"
    confidence: int         # rounded 0–100
    confidence_label: str   # "87% confidence"
    source_type: SourceType
    source_label: str       # "Video analysis" | "Audio analysis"
    show_video_preview: bool
    features: list[FeatureView]


class ErrorView(BaseModel):
    kind: str
    message: str


class WorkflowView(BaseModel):
    status: str
    tab: str | None = None
    draft_url: str = ""
    busy: bool = False
    result: ResultView | None = None
    error: ErrorView | None = None


def present(result: AnalysisResult) -> ResultView:
    confidence = round(result.confidence)
    return ResultView(
        is_deepfake=result.is_deepfake,
        verdict="Likely Deepfake" if result.is_deepfake else "Likely Authentic",
        confidence=confidence,
        confidence_label=f"{confidence}% confidence",
        source_type=result.source_type,
        source_label="Video analysis" if result.source_type == "video" else "Audio analysis",
        show_video_preview=result.source_type == "video",
        features=[
            FeatureView(name=f.name, value=f.value, label=f"{round(f.value)}%")
            for f in result.features
        ],
    )


def present_error(error: DetectionError) -> ErrorView:
    return ErrorView(kind=error.kind, message=str(error))


def present_state(state: WorkflowState) -> WorkflowView:
    view = WorkflowView(status=state.status.value)
    if isinstance(state, Collecting):
        view.tab = state.tab
        view.draft_url = state.draft_url
    elif isinstance(state, (Analyzing, Recording)):
        view.busy = True
    elif isinstance(state, Completed):
        view.result = present(state.result)
    elif isinstance(state, Failed):
        view.error = present_error(state.error)
    return view
