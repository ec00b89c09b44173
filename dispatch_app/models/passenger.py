from typing import Optional
from pydantic import BaseModel, ConfigDict

from dispatch_app.models.transport_request import EmployeeTransport

UNKNOWN_NAME = "Unknown"
NOT_SPECIFIED = "Not specified"


class Passenger(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = UNKNOWN_NAME
    phone: str = NOT_SPECIFIED
    email: str = NOT_SPECIFIED
    departure_address: Optional[str] = None
    arrival_address: Optional[str] = None

    @classmethod
    def from_employee_transport(cls, entry: EmployeeTransport) -> "Passenger":
        employee = entry.employee
        return cls(
            id=entry.employee_id,
            name=(employee.full_name if employee else None) or UNKNOWN_NAME,
            phone=(employee.phone if employee else None) or NOT_SPECIFIED,
            email=(employee.email if employee else None) or NOT_SPECIFIED,
            departure_address=entry.departure.formatted_address if entry.departure else None,
            arrival_address=entry.arrival.formatted_address if entry.arrival else None,
        )
