from typing import List, Optional
from pydantic import BaseModel, Field

from dispatch_app.models.vehicle import VirtualVehicle


class DispatchDraft(BaseModel):
    """Persisted snapshot of an in-progress dispatch. Stored with the same snake_case field names the API uses."""

    transport_request_id: str
    vehicles: List[VirtualVehicle] = Field(default_factory=list)
    passenger_count: int = Field(0, ge=0)
    last_modified: str
    reference: Optional[str] = None

    @property
    def assigned_count(self) -> int:
        return sum(v.occupancy for v in self.vehicles)


class DraftSummary(BaseModel):
    transport_request_id: str
    reference: Optional[str] = None
    vehicle_count: int
    passenger_count: int
    assigned_count: int
    completion_percentage: int
    last_modified: str
