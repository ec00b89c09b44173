from typing import Dict, Iterable, List, Optional

from dispatch_app.core.errors import (
    AlreadyAssignedError,
    CapacityExceededError,
    PassengerNotAssignedError,
    PassengerNotFoundError,
    VehicleDispatchedError,
)
from dispatch_app.core.logger import get_logger
from dispatch_app.models.passenger import Passenger
from dispatch_app.models.transport_request import TransportDirection
from dispatch_app.models.vehicle import VehicleStatus, VirtualVehicle
from dispatch_app.services.vehicle_pool import VehiclePool

logger = get_logger(__name__)

ARRIVAL_MISMATCH_WARNING = "Warning: multiple different arrival addresses in this vehicle"
DEPARTURE_MISMATCH_WARNING = "Warning: multiple different departure addresses in this vehicle"


def warning_for(vehicle: VirtualVehicle, direction: Optional[TransportDirection]) -> Optional[str]:
    """
    Advisory check on a vehicle roster; never blocks an assignment.

    Morning runs (home to work) should share the arrival address, evening
    runs (work to home) the departure address.
    """
    if len(vehicle.assigned_passengers) <= 1:
        return None

    if direction != TransportDirection.OFFICE_TO_HOME:
        arrivals = {p.arrival_address for p in vehicle.assigned_passengers}
        if len(arrivals) > 1:
            return ARRIVAL_MISMATCH_WARNING
    else:
        departures = {p.departure_address for p in vehicle.assigned_passengers}
        if len(departures) > 1:
            return DEPARTURE_MISMATCH_WARNING
    return None


class AssignmentEngine:
    """Sole writer of vehicle rosters. Every check runs before any mutation."""

    def __init__(self, passengers: Iterable[Passenger], pool: VehiclePool):
        self.passengers: Dict[str, Passenger] = {p.id: p for p in passengers}
        self.pool = pool
        self._versions: Dict[str, int] = {}

    def passenger(self, passenger_id: str) -> Passenger:
        try:
            return self.passengers[passenger_id]
        except KeyError:
            raise PassengerNotFoundError(passenger_id) from None

    def _bump(self, vehicle_id: str) -> None:
        self._versions[vehicle_id] = self._versions.get(vehicle_id, 0) + 1

    def roster_version(self, vehicle_id: str) -> int:
        """Changes on every roster edit, so in-flight work on an older roster can be recognised."""
        return self._versions.get(vehicle_id, 0)

    def assign(self, passenger_id: str, vehicle_id: str) -> VirtualVehicle:
        passenger = self.passenger(passenger_id)
        vehicle = self.pool.get(vehicle_id)

        current = self.pool.vehicle_of(passenger_id)
        if current is not None:
            raise AlreadyAssignedError(passenger_id, current.id)
        if vehicle.status == VehicleStatus.DISPATCHED:
            raise VehicleDispatchedError(vehicle_id)
        if vehicle.is_full:
            raise CapacityExceededError(vehicle_id, vehicle.capacity)

        vehicle.assigned_passengers.append(passenger)
        self._bump(vehicle_id)
        vehicle.status = VehicleStatus.ASSIGNED
        vehicle.route_estimation = None
        if vehicle.is_full:
            vehicle.is_collapsed = True

        logger.info(f"Assigned passenger {passenger_id} to {vehicle_id} ({vehicle.occupancy}/{vehicle.capacity})")
        return vehicle

    def unassign(self, passenger_id: str, vehicle_id: str) -> VirtualVehicle:
        vehicle = self.pool.get(vehicle_id)
        if vehicle.status == VehicleStatus.DISPATCHED:
            raise VehicleDispatchedError(vehicle_id)
        if not vehicle.has_passenger(passenger_id):
            raise PassengerNotAssignedError(passenger_id, vehicle_id)

        vehicle.assigned_passengers = [p for p in vehicle.assigned_passengers if p.id != passenger_id]
        self._bump(vehicle_id)
        vehicle.status = VehicleStatus.ASSIGNED if vehicle.assigned_passengers else VehicleStatus.AVAILABLE
        vehicle.route_estimation = None
        vehicle.is_collapsed = False

        logger.info(f"Removed passenger {passenger_id} from {vehicle_id} ({vehicle.occupancy}/{vehicle.capacity})")
        return vehicle

    def assigned_count(self) -> int:
        return len(self.pool.passenger_ids())

    def unassigned_passengers(self) -> List[Passenger]:
        placed = set(self.pool.passenger_ids())
        return [p for p in self.passengers.values() if p.id not in placed]

    def all_assigned(self) -> bool:
        placed = self.pool.passenger_ids()
        if len(placed) != len(set(placed)):
            return False
        return set(placed) == set(self.passengers)
