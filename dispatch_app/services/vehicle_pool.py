import math
import re
from typing import Dict, Iterable, Iterator, List, Optional

from dispatch_app.core.errors import VehicleNotFoundError, VehicleRemovalError
from dispatch_app.core.logger import get_logger
from dispatch_app.models.vehicle import DEFAULT_CAPACITY, VehicleStatus, VirtualVehicle

logger = get_logger(__name__)

VEHICLE_ID_PATTERN = re.compile(r"^taxi-(\d+)$")


def minimum_vehicle_count(passenger_count: int, capacity: int = DEFAULT_CAPACITY) -> int:
    return max(1, math.ceil(passenger_count / capacity))


class VehiclePool:
    """
    The set of virtual vehicles of one dispatch session.

    The pool keeps a base order (newest vehicles first) and exposes the
    display order through ordered(), recomputed on every read.
    """

    def __init__(
        self,
        minimum_count: int = 1,
        capacity: int = DEFAULT_CAPACITY,
        vehicles: Optional[Iterable[VirtualVehicle]] = None,
    ):
        self.minimum_count = max(1, minimum_count)
        self.capacity = capacity
        self._vehicles: List[VirtualVehicle] = list(vehicles or [])
        self._sequence = max((self._sequence_of(v.id) for v in self._vehicles), default=0)

    @classmethod
    def initial(cls, passenger_count: int, capacity: int = DEFAULT_CAPACITY) -> "VehiclePool":
        minimum = minimum_vehicle_count(passenger_count, capacity)
        pool = cls(minimum_count=minimum, capacity=capacity)
        pool.top_up()
        return pool

    @staticmethod
    def _sequence_of(vehicle_id: str) -> int:
        match = VEHICLE_ID_PATTERN.match(vehicle_id)
        return int(match.group(1)) if match else 0

    def __len__(self) -> int:
        return len(self._vehicles)

    def __iter__(self) -> Iterator[VirtualVehicle]:
        return iter(self._vehicles)

    def __contains__(self, vehicle_id: str) -> bool:
        return any(v.id == vehicle_id for v in self._vehicles)

    def _new_vehicle(self) -> VirtualVehicle:
        self._sequence += 1
        return VirtualVehicle(
            id=f"taxi-{self._sequence}",
            name=f"Taxi #{len(self._vehicles) + 1}",
            capacity=self.capacity,
        )

    def top_up(self) -> List[VirtualVehicle]:
        """Append empty vehicles until the pool holds at least the minimum count."""
        added = []
        while len(self._vehicles) < self.minimum_count:
            vehicle = self._new_vehicle()
            self._vehicles.append(vehicle)
            added.append(vehicle)
        return added

    def get(self, vehicle_id: str) -> VirtualVehicle:
        for vehicle in self._vehicles:
            if vehicle.id == vehicle_id:
                return vehicle
        raise VehicleNotFoundError(vehicle_id)

    def create_vehicle(self) -> VirtualVehicle:
        vehicle = self._new_vehicle()
        self._vehicles.insert(0, vehicle)
        logger.info(f"Added virtual vehicle {vehicle.id} ({vehicle.name}), pool size {len(self._vehicles)}")
        return vehicle

    def remove_vehicle(self, vehicle_id: str) -> VirtualVehicle:
        vehicle = self.get(vehicle_id)
        if vehicle.assigned_passengers:
            raise VehicleRemovalError("Cannot remove a vehicle with assigned passengers")
        if len(self._vehicles) <= self.minimum_count:
            raise VehicleRemovalError(f"Minimum {self.minimum_count} vehicle(s) required")
        self._vehicles.remove(vehicle)
        logger.info(f"Removed virtual vehicle {vehicle_id}, pool size {len(self._vehicles)}")
        return vehicle

    def toggle_collapse(self, vehicle_id: str) -> VirtualVehicle:
        vehicle = self.get(vehicle_id)
        vehicle.is_collapsed = not vehicle.is_collapsed
        return vehicle

    def ordered(self) -> List[VirtualVehicle]:
        # sorted() is stable: vehicles with room first, base order otherwise
        return sorted(self._vehicles, key=lambda v: v.is_full)

    def vehicles(self) -> List[VirtualVehicle]:
        return list(self._vehicles)

    def assigned_vehicles(self) -> List[VirtualVehicle]:
        return [v for v in self._vehicles if v.assigned_passengers]

    def non_default_vehicles(self) -> List[VirtualVehicle]:
        return [v for v in self._vehicles if not v.is_default]

    def passenger_ids(self) -> List[str]:
        return [pid for v in self._vehicles for pid in v.passenger_ids()]

    def vehicle_of(self, passenger_id: str) -> Optional[VirtualVehicle]:
        for vehicle in self._vehicles:
            if vehicle.has_passenger(passenger_id):
                return vehicle
        return None

    def status_counts(self) -> Dict[VehicleStatus, int]:
        counts = {status: 0 for status in VehicleStatus}
        for vehicle in self._vehicles:
            counts[vehicle.status] += 1
        return counts
