from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from dispatch_app.models.passenger import Passenger

DEFAULT_CAPACITY = 4


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    DISPATCHED = "dispatched"


class RouteEstimation(BaseModel):
    distance: str = Field(..., description="Total distance, e.g. '12.3 km'")
    duration: str = Field(..., description="Total duration, e.g. '0h 25min'")
    points: List[str] = Field(default_factory=list, description="Origin, optimized waypoints, destination")
    distance_meters: float = 0.0
    duration_seconds: float = 0.0


class VirtualVehicle(BaseModel):
    id: str
    name: str
    capacity: int = DEFAULT_CAPACITY
    assigned_passengers: List[Passenger] = Field(default_factory=list)
    status: VehicleStatus = VehicleStatus.AVAILABLE
    route_estimation: Optional[RouteEstimation] = None
    is_collapsed: bool = False

    @property
    def occupancy(self) -> int:
        return len(self.assigned_passengers)

    @property
    def is_full(self) -> bool:
        return self.occupancy >= self.capacity

    @property
    def is_default(self) -> bool:
        """Empty and never touched; such vehicles are left out of drafts."""
        return not self.assigned_passengers and self.status == VehicleStatus.AVAILABLE

    def passenger_ids(self) -> List[str]:
        return [p.id for p in self.assigned_passengers]

    def has_passenger(self, passenger_id: str) -> bool:
        return any(p.id == passenger_id for p in self.assigned_passengers)
