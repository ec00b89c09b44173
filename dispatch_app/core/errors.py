"""
Error taxonomy of the dispatch engine.

Every exception carries a user-facing message and the HTTP status the
routers translate it to. Per-vehicle estimation failures (InvalidAddressError,
RoutingError) are recovered inside the workflow and never reach a client.
"""


class DispatchError(Exception):
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CapacityExceededError(DispatchError):
    status_code = 409

    def __init__(self, vehicle_id: str, capacity: int):
        super().__init__(f"Vehicle full ({capacity}/{capacity} passengers)")
        self.vehicle_id = vehicle_id
        self.capacity = capacity


class AlreadyAssignedError(DispatchError):
    status_code = 409

    def __init__(self, passenger_id: str, vehicle_id: str):
        super().__init__(f"Passenger {passenger_id} is already assigned to {vehicle_id}")
        self.passenger_id = passenger_id
        self.vehicle_id = vehicle_id


class PassengerNotFoundError(DispatchError):
    status_code = 404

    def __init__(self, passenger_id: str):
        super().__init__(f"Passenger {passenger_id} is not part of this transport request")
        self.passenger_id = passenger_id


class PassengerNotAssignedError(DispatchError):
    status_code = 409

    def __init__(self, passenger_id: str, vehicle_id: str):
        super().__init__(f"Passenger {passenger_id} is not assigned to {vehicle_id}")
        self.passenger_id = passenger_id
        self.vehicle_id = vehicle_id


class VehicleNotFoundError(DispatchError):
    status_code = 404

    def __init__(self, vehicle_id: str):
        super().__init__(f"Vehicle {vehicle_id} does not exist")
        self.vehicle_id = vehicle_id


class VehicleDispatchedError(DispatchError):
    status_code = 409

    def __init__(self, vehicle_id: str):
        super().__init__(f"Vehicle {vehicle_id} is already dispatched")
        self.vehicle_id = vehicle_id


class VehicleRemovalError(DispatchError):
    status_code = 409


class IncompleteAssignmentError(DispatchError):
    status_code = 409

    def __init__(self, unassigned: int):
        super().__init__("All passengers must be assigned before dispatch")
        self.unassigned = unassigned


class WorkflowStateError(DispatchError):
    status_code = 409


class InvalidAddressError(DispatchError):
    status_code = 422

    def __init__(self, message: str = "Invalid addresses"):
        super().__init__(message)


class RoutingError(DispatchError):
    status_code = 502


class BackendError(DispatchError):
    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.detail = detail


class CommitError(DispatchError):
    status_code = 502


class PermissionDeniedError(DispatchError):
    status_code = 403

    def __init__(self, action: str):
        super().__init__(f"Missing permission '{action}'")
        self.action = action


class SessionNotFoundError(DispatchError):
    status_code = 404

    def __init__(self, request_id: str):
        super().__init__(f"No dispatch session for transport request {request_id}")
        self.request_id = request_id
