import asyncio
import math
from typing import Dict, Iterable, List, Optional, Union

from dispatch_app.core.errors import InvalidAddressError
from dispatch_app.core.logger import get_logger
from dispatch_app.models.transport_request import TransportDirection
from dispatch_app.models.vehicle import RouteEstimation, VirtualVehicle
from dispatch_app.services.routing_service import RouteResult, RoutingClient

logger = get_logger(__name__)

EstimationOutcome = Union[RouteEstimation, Exception]


def format_distance(meters: float) -> str:
    return f"{meters / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    # Half minutes round up
    minutes = int(math.floor(seconds / 60 + 0.5))
    return f"{minutes // 60}h {minutes % 60}min"


def build_stops(vehicle: VirtualVehicle, direction: Optional[TransportDirection]) -> List[str]:
    """
    Ordered stop list for one vehicle: origin first, destination last.

    Home to work picks everyone up at their departure address and drops the
    group at the first passenger's arrival (the workplace). Work to home
    leaves from the first passenger's departure and drops everyone at their
    arrival address.
    """
    passengers = vehicle.assigned_passengers
    if not passengers:
        raise InvalidAddressError()

    if direction != TransportDirection.OFFICE_TO_HOME:
        pickups = [p.departure_address for p in passengers]
        workplace = passengers[0].arrival_address
        stops = [*pickups, workplace]
    else:
        workplace = passengers[0].departure_address
        dropoffs = [p.arrival_address for p in passengers]
        stops = [workplace, *dropoffs]

    if any(not stop for stop in stops):
        raise InvalidAddressError()
    return stops


def to_estimation(stops: List[str], result: RouteResult) -> RouteEstimation:
    origin, waypoints, destination = stops[0], stops[1:-1], stops[-1]
    order = result.waypoint_order or list(range(len(waypoints)))

    total_meters = sum(leg.distance_meters for leg in result.legs)
    total_seconds = sum(leg.duration_seconds for leg in result.legs)

    return RouteEstimation(
        distance=format_distance(total_meters),
        duration=format_duration(total_seconds),
        points=[origin, *(waypoints[i] for i in order), destination],
        distance_meters=total_meters,
        duration_seconds=total_seconds,
    )


class RouteEstimator:
    def __init__(self, client: RoutingClient):
        self.client = client

    async def estimate(self, vehicle: VirtualVehicle, direction: Optional[TransportDirection]) -> RouteEstimation:
        stops = build_stops(vehicle, direction)
        logger.info(f"Estimating route for {vehicle.id} through {len(stops)} stops")
        result = await self.client.route(stops[0], stops[-1], stops[1:-1], optimize=True)
        estimation = to_estimation(stops, result)
        logger.info(f"Route for {vehicle.id}: {estimation.distance}, {estimation.duration}")
        return estimation

    async def estimate_all(
        self,
        vehicles: Iterable[VirtualVehicle],
        direction: Optional[TransportDirection],
    ) -> Dict[str, EstimationOutcome]:
        """One independent call per vehicle; a failure only affects its own vehicle."""
        targets = [v for v in vehicles if v.assigned_passengers]
        results = await asyncio.gather(
            *(self.estimate(v, direction) for v in targets),
            return_exceptions=True,
        )

        outcomes: Dict[str, EstimationOutcome] = {}
        for vehicle, result in zip(targets, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Route estimation failed for {vehicle.id}: {result}")
            outcomes[vehicle.id] = result
        return outcomes
