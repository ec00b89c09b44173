from typing import Any, Callable, List, Mapping, Optional, TypeVar

from dispatch_app.core.config import settings
from dispatch_app.core.errors import (
    CommitError,
    DispatchError,
    IncompleteAssignmentError,
    PermissionDeniedError,
    WorkflowStateError,
)
from dispatch_app.core.logger import get_logger
from dispatch_app.models.draft import DispatchDraft
from dispatch_app.models.passenger import Passenger
from dispatch_app.models.response import (
    CommitResponse,
    ConfirmationRow,
    ConfirmationView,
    DispatchView,
    Notification,
    NotificationLevel,
    VehicleView,
    WorkflowState,
)
from dispatch_app.models.transport_request import (
    DispatchPatch,
    TransportDirection,
    TransportRequest,
    TransportStatus,
    VehicleAssignmentPatch,
)
from dispatch_app.models.vehicle import VehicleStatus, VirtualVehicle
from dispatch_app.services.assignment_engine import AssignmentEngine, warning_for
from dispatch_app.services.draft_store import DraftStore
from dispatch_app.services.grouping import arrival_key, departure_key, unassigned_by_location
from dispatch_app.services.route_estimator import RouteEstimator
from dispatch_app.services.transport_request_service import TransportRequestService
from dispatch_app.services.user_service import has_permission
from dispatch_app.services.vehicle_pool import VehiclePool, minimum_vehicle_count

logger = get_logger(__name__)

T = TypeVar("T")

EDITABLE_STATES = (WorkflowState.EDITING, WorkflowState.ESTIMATING)


class DispatchWorkflow:
    """
    Dispatch of one group transport request.

    EDITING -> ESTIMATING -> CONFIRMING -> COMMITTED. Roster edits are
    allowed while editing and while estimates are in flight; a failed step
    always leaves the workflow in EDITING or CONFIRMING.
    """

    def __init__(
        self,
        request: TransportRequest,
        backend: TransportRequestService,
        estimator: RouteEstimator,
        drafts: DraftStore,
        draft: Optional[DispatchDraft] = None,
        capacity: Optional[int] = None,
    ):
        self.request = request
        self.request_id = request.id
        self.direction: Optional[TransportDirection] = request.direction
        self.backend = backend
        self.estimator = estimator
        self.drafts = drafts
        self.capacity = capacity or settings.VEHICLE_CAPACITY

        self.passengers: List[Passenger] = [Passenger.from_employee_transport(e) for e in request.employee_transports]
        # Fixed for the lifetime of this session, never re-derived from a draft
        self.minimum_vehicle_count = minimum_vehicle_count(len(self.passengers), self.capacity)

        self.state = WorkflowState.EDITING
        self.notifications: List[Notification] = []
        self._committing = False

        restored = self._restore(draft) if draft is not None else None
        self.restored_from_draft = restored is not None
        self.pool = restored if restored is not None else VehiclePool.initial(len(self.passengers), self.capacity)
        self.engine = AssignmentEngine(self.passengers, self.pool)

    @classmethod
    async def start(
        cls,
        request_id: str,
        user: Optional[Mapping[str, Any]],
        backend: TransportRequestService,
        estimator: RouteEstimator,
        drafts: DraftStore,
        permission: Optional[str] = None,
    ) -> "DispatchWorkflow":
        action = permission or settings.DISPATCH_PERMISSION
        if not has_permission(user, action):
            raise PermissionDeniedError(action)

        request = await backend.get_transport_request_by_id(request_id)
        draft = drafts.load(request_id)
        workflow = cls(request, backend, estimator, drafts, draft=draft)
        logger.info(
            f"Dispatch session for {request_id}: {len(workflow.passengers)} passengers, "
            f"{len(workflow.pool)} vehicles, draft={'restored' if workflow.restored_from_draft else 'none'}"
        )
        return workflow

    # ------------------------------------------------------------------
    # Draft recovery
    # ------------------------------------------------------------------
    def _restore(self, draft: DispatchDraft) -> Optional[VehiclePool]:
        by_id = {p.id: p for p in self.passengers}
        vehicles: List[VirtualVehicle] = []
        for saved in draft.vehicles:
            if saved.status == VehicleStatus.DISPATCHED or any(pid not in by_id for pid in saved.passenger_ids()):
                logger.info(f"Draft for {self.request_id} no longer matches the request, discarding")
                self.drafts.delete(self.request_id)
                return None
            # Rosters always come from the request, not from the cached copies
            vehicles.append(saved.model_copy(update={
                "assigned_passengers": [by_id[pid] for pid in saved.passenger_ids()],
            }))

        if draft.passenger_count != len(self.passengers):
            logger.info(
                f"Draft for {self.request_id} was saved with {draft.passenger_count} passengers, "
                f"request now has {len(self.passengers)}"
            )

        pool = VehiclePool(minimum_count=self.minimum_vehicle_count, capacity=self.capacity, vehicles=vehicles)
        pool.top_up()
        return pool

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def notify(self, level: NotificationLevel, message: str) -> None:
        self.notifications.append(Notification(level=level, message=message))

    def drain_notifications(self) -> List[Notification]:
        pending, self.notifications = self.notifications, []
        return pending

    def _require(self, *states: WorkflowState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise WorkflowStateError(f"Action not allowed while {self.state.value} (expected {allowed})")

    def _mutate(self, action: Callable[[], T]) -> T:
        try:
            self._require(*EDITABLE_STATES)
            result = action()
        except DispatchError as e:
            self.notify(NotificationLevel.ERROR, e.message)
            raise
        self._autosave()
        return result

    def _autosave(self) -> None:
        self.drafts.save(
            self.request_id,
            self.pool,
            passenger_count=len(self.passengers),
            reference=self.request.reference,
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def assign(self, passenger_id: str, vehicle_id: str) -> VirtualVehicle:
        return self._mutate(lambda: self.engine.assign(passenger_id, vehicle_id))

    def unassign(self, passenger_id: str, vehicle_id: str) -> VirtualVehicle:
        return self._mutate(lambda: self.engine.unassign(passenger_id, vehicle_id))

    def add_vehicle(self) -> VirtualVehicle:
        vehicle = self._mutate(self.pool.create_vehicle)
        self.notify(NotificationLevel.SUCCESS, f"Virtual vehicle {vehicle.name} added")
        return vehicle

    def remove_vehicle(self, vehicle_id: str) -> VirtualVehicle:
        vehicle = self._mutate(lambda: self.pool.remove_vehicle(vehicle_id))
        self.notify(NotificationLevel.SUCCESS, "Virtual vehicle removed")
        return vehicle

    def toggle_collapse(self, vehicle_id: str) -> VirtualVehicle:
        return self._mutate(lambda: self.pool.toggle_collapse(vehicle_id))

    def all_assigned(self) -> bool:
        return self.engine.all_assigned()

    # ------------------------------------------------------------------
    # Estimation and confirmation
    # ------------------------------------------------------------------
    async def request_confirmation(self) -> ConfirmationView:
        try:
            self._require(WorkflowState.EDITING)
            if not self.pool.assigned_vehicles():
                raise WorkflowStateError("No vehicle to dispatch")
            if not self.engine.all_assigned():
                raise IncompleteAssignmentError(len(self.engine.unassigned_passengers()))
        except DispatchError as e:
            self.notify(NotificationLevel.ERROR, e.message)
            raise

        self.state = WorkflowState.ESTIMATING
        targets = self.pool.assigned_vehicles()
        issued = {v.id: self.engine.roster_version(v.id) for v in targets}
        logger.info(f"Estimating {len(targets)} route(s) for {self.request_id}")

        try:
            outcomes = await self.estimator.estimate_all(targets, self.direction)
        except BaseException:
            self.state = WorkflowState.EDITING
            raise

        for vehicle_id, outcome in outcomes.items():
            if vehicle_id not in self.pool or self.engine.roster_version(vehicle_id) != issued[vehicle_id]:
                logger.info(f"Dropping stale route estimate for {vehicle_id}")
                continue
            vehicle = self.pool.get(vehicle_id)
            if isinstance(outcome, Exception):
                vehicle.route_estimation = None
                self.notify(NotificationLevel.WARNING, f"Route calculation error for {vehicle.name}")
            else:
                vehicle.route_estimation = outcome

        if not self.engine.all_assigned():
            # Rosters were edited while the estimates were in flight
            self.state = WorkflowState.EDITING
            error = IncompleteAssignmentError(len(self.engine.unassigned_passengers()))
            self.notify(NotificationLevel.ERROR, error.message)
            raise error

        self.state = WorkflowState.CONFIRMING
        return self.confirmation_view()

    def cancel(self) -> None:
        self._require(WorkflowState.CONFIRMING)
        if self._committing:
            raise WorkflowStateError("Dispatch is being committed, it can no longer be cancelled")
        self.state = WorkflowState.EDITING
        logger.info(f"Confirmation cancelled for {self.request_id}, back to editing")

    async def confirm(self) -> CommitResponse:
        self._require(WorkflowState.CONFIRMING)
        if self._committing:
            raise WorkflowStateError("Dispatch already being committed")

        assigned = self.pool.assigned_vehicles()
        patch = DispatchPatch(
            employee_transports=[
                VehicleAssignmentPatch(id=passenger.id, virtual_vehicle_id=vehicle.id)
                for vehicle in assigned
                for passenger in vehicle.assigned_passengers
            ],
            status=TransportStatus.DISPATCHED,
            direction=self.direction,
        )

        self._committing = True
        try:
            self.request = await self.backend.update_transport_request(self.request_id, patch.to_payload())
        except Exception as e:
            logger.error(f"Dispatch commit failed for {self.request_id}: {e}")
            self.notify(NotificationLevel.ERROR, "Failed to create the dispatch")
            raise CommitError(f"Failed to create the dispatch: {e}") from e
        finally:
            self._committing = False

        for vehicle in assigned:
            vehicle.status = VehicleStatus.DISPATCHED
        self.drafts.delete(self.request_id)
        self.state = WorkflowState.COMMITTED
        self.notify(NotificationLevel.SUCCESS, f"Dispatch created with {len(assigned)} vehicle(s)")
        logger.info(f"Transport request {self.request_id} dispatched on {len(assigned)} vehicle(s)")

        return CommitResponse(
            request_id=self.request_id,
            state=self.state,
            dispatched_vehicles=[v.id for v in assigned],
            notifications=self.drain_notifications(),
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def confirmation_view(self) -> ConfirmationView:
        rows = []
        for vehicle in self.pool.assigned_vehicles():
            row = ConfirmationRow(
                vehicle_id=vehicle.id,
                vehicle_name=vehicle.name,
                passengers=[p.name for p in vehicle.assigned_passengers],
            )
            estimation = vehicle.route_estimation
            if estimation is not None:
                row.distance = estimation.distance
                row.duration = estimation.duration
                row.points = estimation.points
                row.estimated = True
            rows.append(row)

        return ConfirmationView(
            request_id=self.request_id,
            state=self.state,
            vehicle_count=len(rows),
            passenger_count=len(self.passengers),
            rows=rows,
            notifications=self.drain_notifications(),
        )

    def view(self) -> DispatchView:
        key_fn = arrival_key if self.direction == TransportDirection.OFFICE_TO_HOME else departure_key
        return DispatchView(
            request_id=self.request_id,
            reference=self.request.reference,
            direction=self.direction,
            scheduled_date=self.request.scheduled_date,
            state=self.state,
            passenger_count=len(self.passengers),
            assigned_count=self.engine.assigned_count(),
            all_assigned=self.engine.all_assigned(),
            minimum_vehicle_count=self.minimum_vehicle_count,
            restored_from_draft=self.restored_from_draft,
            vehicles=[
                VehicleView(
                    id=v.id,
                    name=v.name,
                    capacity=v.capacity,
                    occupancy=v.occupancy,
                    status=v.status,
                    is_collapsed=v.is_collapsed,
                    passengers=list(v.assigned_passengers),
                    warning=warning_for(v, self.direction),
                    route_estimation=v.route_estimation,
                )
                for v in self.pool.ordered()
            ],
            unassigned_by_location=unassigned_by_location(self.passengers, self.pool.passenger_ids(), key_fn),
            status_counts=self.pool.status_counts(),
            notifications=self.drain_notifications(),
        )
