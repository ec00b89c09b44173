from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from dispatch_app.core.dependencies import (
    get_backend,
    get_bearer_token,
    get_draft_store,
    get_estimator,
    get_sessions,
    get_user,
)
from dispatch_app.core.errors import DispatchError
from dispatch_app.core.logger import get_logger
from dispatch_app.models.request import AssignPassengerRequest
from dispatch_app.models.response import CommitResponse, ConfirmationView, DispatchView
from dispatch_app.services.dispatch_workflow import DispatchWorkflow
from dispatch_app.services.draft_store import DraftStore
from dispatch_app.services.route_estimator import RouteEstimator
from dispatch_app.services.session_registry import SessionRegistry
from dispatch_app.services.transport_request_service import TransportRequestService

dispatch_router = APIRouter(prefix="/dispatch", tags=["Dispatch"])

logger = get_logger(__name__)


def http_error(e: DispatchError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def current_workflow(request_id: str, sessions: SessionRegistry = Depends(get_sessions)) -> DispatchWorkflow:
    try:
        return sessions.get(request_id)
    except DispatchError as e:
        raise http_error(e)


@dispatch_router.post("/{request_id}/session", response_model=DispatchView)
async def start_session(
    request_id: str,
    user: Optional[dict] = Depends(get_user),
    token: Optional[str] = Depends(get_bearer_token),
    backend: TransportRequestService = Depends(get_backend),
    estimator: RouteEstimator = Depends(get_estimator),
    drafts: DraftStore = Depends(get_draft_store),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """
    Open (or reopen) the dispatch board of a group transport request,
    restoring the saved draft when one exists.
    """
    try:
        workflow = await DispatchWorkflow.start(request_id, user, backend.with_token(token), estimator, drafts)
    except DispatchError as e:
        logger.warning(f"Dispatch session refused for {request_id}: {e.message}")
        raise http_error(e)
    sessions.put(workflow)
    return workflow.view()


@dispatch_router.get("/{request_id}", response_model=DispatchView)
async def get_board(workflow: DispatchWorkflow = Depends(current_workflow)):
    return workflow.view()


@dispatch_router.post("/{request_id}/assignments", response_model=DispatchView)
async def assign_passenger(payload: AssignPassengerRequest, workflow: DispatchWorkflow = Depends(current_workflow)):
    try:
        workflow.assign(payload.passenger_id, payload.vehicle_id)
    except DispatchError as e:
        raise http_error(e)
    return workflow.view()


@dispatch_router.delete("/{request_id}/vehicles/{vehicle_id}/passengers/{passenger_id}", response_model=DispatchView)
async def unassign_passenger(vehicle_id: str, passenger_id: str, workflow: DispatchWorkflow = Depends(current_workflow)):
    try:
        workflow.unassign(passenger_id, vehicle_id)
    except DispatchError as e:
        raise http_error(e)
    return workflow.view()


@dispatch_router.post("/{request_id}/vehicles", response_model=DispatchView)
async def add_vehicle(workflow: DispatchWorkflow = Depends(current_workflow)):
    try:
        workflow.add_vehicle()
    except DispatchError as e:
        raise http_error(e)
    return workflow.view()


@dispatch_router.delete("/{request_id}/vehicles/{vehicle_id}", response_model=DispatchView)
async def remove_vehicle(vehicle_id: str, workflow: DispatchWorkflow = Depends(current_workflow)):
    try:
        workflow.remove_vehicle(vehicle_id)
    except DispatchError as e:
        raise http_error(e)
    return workflow.view()


@dispatch_router.post("/{request_id}/vehicles/{vehicle_id}/toggle", response_model=DispatchView)
async def toggle_vehicle(vehicle_id: str, workflow: DispatchWorkflow = Depends(current_workflow)):
    try:
        workflow.toggle_collapse(vehicle_id)
    except DispatchError as e:
        raise http_error(e)
    return workflow.view()


@dispatch_router.post("/{request_id}/confirmation", response_model=ConfirmationView)
async def request_confirmation(workflow: DispatchWorkflow = Depends(current_workflow)):
    """
    Estimate every vehicle's route and move to the confirmation step.
    Vehicles whose estimate failed are listed as "Not available".
    """
    try:
        return await workflow.request_confirmation()
    except DispatchError as e:
        raise http_error(e)


@dispatch_router.post("/{request_id}/cancel", response_model=DispatchView)
async def cancel_confirmation(workflow: DispatchWorkflow = Depends(current_workflow)):
    try:
        workflow.cancel()
    except DispatchError as e:
        raise http_error(e)
    return workflow.view()


@dispatch_router.post("/{request_id}/confirm", response_model=CommitResponse)
async def confirm_dispatch(
    request_id: str,
    workflow: DispatchWorkflow = Depends(current_workflow),
    sessions: SessionRegistry = Depends(get_sessions),
):
    """
    Commit the dispatch to the backend. The session is released once the
    request is dispatched; a failed commit keeps it open for a retry.
    """
    try:
        result = await workflow.confirm()
    except DispatchError as e:
        raise http_error(e)
    sessions.discard(request_id)
    return result
