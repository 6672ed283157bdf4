"""
sessions.py — In-memory registry of per-user detection workflows.

Workflows are session-scoped and never persisted. When the registry is
full, the least-recently-used session is reset and dropped to make room.

The analysis client (and its engine) is shared by every session; each
session still has its own state machine, so single-flight holds per session.
"""

import logging
import uuid
from collections import OrderedDict

from deepcheck.ai.analysis_client import AnalysisClient
from deepcheck.core.config import settings
from deepcheck.services.recorder import Recorder
from deepcheck.workflow.orchestrator import DetectionWorkflow

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        client: AnalysisClient | None = None,
        recorder: Recorder | None = None,
        max_sessions: int | None = None,
    ) -> None:
        self._client = client
        self.recorder = recorder
        self.max_sessions = max_sessions or settings.max_sessions
        self._sessions: OrderedDict[str, DetectionWorkflow] = OrderedDict()

    @property
    def client(self) -> AnalysisClient:
        # Built lazily so importing the app never touches engine configuration.
        if self._client is None:
            self._client = AnalysisClient()
        return self._client

    @client.setter
    def client(self, value: AnalysisClient) -> None:
        self._client = value

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> tuple[str, DetectionWorkflow]:
        while len(self._sessions) >= self.max_sessions:
            evicted_id, evicted = self._sessions.popitem(last=False)
            evicted.reset()
            logger.info("Session registry full — evicted %s", evicted_id)

        session_id = uuid.uuid4().hex
        workflow = DetectionWorkflow(self.client, recorder=self.recorder)
        self._sessions[session_id] = workflow
        logger.debug("Created session %s", session_id)
        return session_id, workflow

    def get(self, session_id: str) -> DetectionWorkflow | None:
        workflow = self._sessions.get(session_id)
        if workflow is not None:
            self._sessions.move_to_end(session_id)
        return workflow

    def remove(self, session_id: str) -> bool:
        workflow = self._sessions.pop(session_id, None)
        if workflow is None:
            return False
        workflow.reset()
        logger.debug("Removed session %s", session_id)
        return True

    def clear(self) -> None:
        for workflow in self._sessions.values():
            workflow.reset()
        self._sessions.clear()


# Module-level singleton — routes reach it through get_registry()
session_registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    """FastAPI dependency; tests override it via app.dependency_overrides."""
    return session_registry
