from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from dispatch_app.models.passenger import Passenger
from dispatch_app.models.transport_request import TransportDirection
from dispatch_app.models.vehicle import RouteEstimation, VehicleStatus

NOT_AVAILABLE = "Not available"


class WorkflowState(str, Enum):
    EDITING = "editing"
    ESTIMATING = "estimating"
    CONFIRMING = "confirming"
    COMMITTED = "committed"


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    level: NotificationLevel
    message: str


class VehicleView(BaseModel):
    id: str
    name: str
    capacity: int
    occupancy: int
    status: VehicleStatus
    is_collapsed: bool
    passengers: List[Passenger]
    warning: Optional[str] = None
    route_estimation: Optional[RouteEstimation] = None


class DispatchView(BaseModel):
    request_id: str
    reference: Optional[str] = None
    direction: Optional[TransportDirection] = None
    scheduled_date: Optional[str] = None
    state: WorkflowState
    passenger_count: int
    assigned_count: int
    all_assigned: bool
    minimum_vehicle_count: int
    restored_from_draft: bool = False
    vehicles: List[VehicleView]
    unassigned_by_location: Dict[str, List[Passenger]] = Field(default_factory=dict)
    status_counts: Dict[VehicleStatus, int] = Field(default_factory=dict)
    notifications: List[Notification] = Field(default_factory=list)


class ConfirmationRow(BaseModel):
    vehicle_id: str
    vehicle_name: str
    passengers: List[str]
    distance: str = NOT_AVAILABLE
    duration: str = NOT_AVAILABLE
    points: List[str] = Field(default_factory=list)
    estimated: bool = False


class ConfirmationView(BaseModel):
    request_id: str
    state: WorkflowState
    vehicle_count: int
    passenger_count: int
    rows: List[ConfirmationRow]
    notifications: List[Notification] = Field(default_factory=list)


class CommitResponse(BaseModel):
    request_id: str
    state: WorkflowState
    dispatched_vehicles: List[str]
    notifications: List[Notification] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str
