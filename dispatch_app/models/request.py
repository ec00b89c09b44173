from pydantic import BaseModel, Field


class AssignPassengerRequest(BaseModel):
    passenger_id: str = Field(..., min_length=1, description="Employee id of the passenger to place")
    vehicle_id: str = Field(..., min_length=1, description="Virtual vehicle receiving the passenger")
