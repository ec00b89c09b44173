from typing import Dict

from dispatch_app.core.errors import SessionNotFoundError
from dispatch_app.core.logger import get_logger
from dispatch_app.services.dispatch_workflow import DispatchWorkflow

logger = get_logger(__name__)


class SessionRegistry:
    """Active dispatch workflows, one per transport request (single operator per request)."""

    def __init__(self):
        self._sessions: Dict[str, DispatchWorkflow] = {}

    def put(self, workflow: DispatchWorkflow) -> DispatchWorkflow:
        if workflow.request_id in self._sessions:
            logger.info(f"Replacing dispatch session for {workflow.request_id}")
        self._sessions[workflow.request_id] = workflow
        return workflow

    def get(self, request_id: str) -> DispatchWorkflow:
        try:
            return self._sessions[request_id]
        except KeyError:
            raise SessionNotFoundError(request_id) from None

    def discard(self, request_id: str) -> None:
        if self._sessions.pop(request_id, None) is not None:
            logger.info(f"Dispatch session for {request_id} released")

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
