from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class TransportDirection(str, Enum):
    HOME_TO_OFFICE = "HOMETOOFFICE"
    OFFICE_TO_HOME = "OFFICETOHOME"


class TransportStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DISPATCHED = "DISPATCHED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class BackendModel(BaseModel):
    # Backend payloads are camelCase and carry many fields we never read
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmployeeInfo(BackendModel):
    full_name: Optional[str] = Field(None, alias="fullName")
    phone: Optional[str] = None
    email: Optional[str] = None


class AddressInfo(BackendModel):
    formatted_address: Optional[str] = Field(None, alias="formattedAddress")


class EmployeeTransport(BackendModel):
    employee_id: str = Field(..., alias="employeeId")
    note: Optional[str] = None
    start_time: Optional[str] = Field(None, alias="startTime")
    employee: Optional[EmployeeInfo] = None
    departure: Optional[AddressInfo] = None
    arrival: Optional[AddressInfo] = None


class RequestedBy(BackendModel):
    id: str
    full_name: Optional[str] = Field(None, alias="fullName")


class TransportRequest(BackendModel):
    id: str
    reference: Optional[str] = None
    status: Optional[TransportStatus] = None
    direction: Optional[TransportDirection] = None
    scheduled_date: Optional[str] = Field(None, alias="scheduledDate")
    note: Optional[str] = None
    requested_by: Optional[RequestedBy] = Field(None, alias="requestedBy")
    employee_transports: List[EmployeeTransport] = Field(default_factory=list, alias="employeeTransports")

    @property
    def is_home_to_work(self) -> bool:
        # Requests without an explicit direction are treated as morning runs
        return self.direction != TransportDirection.OFFICE_TO_HOME


class VehicleAssignmentPatch(BaseModel):
    id: str
    virtual_vehicle_id: str = Field(..., serialization_alias="virtualVehicleId")


class DispatchPatch(BaseModel):
    """Body of the PATCH sent to the backend when a dispatch is committed."""
    employee_transports: List[VehicleAssignmentPatch] = Field(..., serialization_alias="employeeTransports")
    status: TransportStatus = TransportStatus.DISPATCHED
    direction: Optional[TransportDirection] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
