import asyncio
from typing import Dict, List, Optional, Protocol, Tuple

import httpx
from pydantic import BaseModel, Field

from dispatch_app.core.config import settings
from dispatch_app.core.errors import RoutingError
from dispatch_app.core.logger import get_logger

logger = get_logger("routing_service")

Coordinates = Tuple[float, float]


class RouteLeg(BaseModel):
    distance_meters: float = 0.0
    duration_seconds: float = 0.0


class RouteResult(BaseModel):
    legs: List[RouteLeg] = Field(default_factory=list)
    waypoint_order: List[int] = Field(default_factory=list, description="Visiting order as indexes into the waypoints")


class RoutingClient(Protocol):
    async def route(
        self,
        origin: str,
        destination: str,
        waypoints: List[str],
        optimize: bool = True,
    ) -> RouteResult:
        ...


class OpenRouteServiceClient:
    """
    Driving routes through OpenRouteService.

    Steps:
      1. Geocode every distinct address via /geocode/search.
      2. With two or more waypoints, ask /optimization for the visiting order
         (one vehicle with fixed start and end, one job per waypoint).
      3. Request /v2/directions/driving-car through the ordered coordinates
         and read the per-segment distance and duration.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.OPENROUTESERVICE_API_KEY
        self.base_url = (base_url or settings.OPENROUTESERVICE_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.ROUTING_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def route(
        self,
        origin: str,
        destination: str,
        waypoints: List[str],
        optimize: bool = True,
    ) -> RouteResult:
        if not self.api_key:
            raise RoutingError("OPENROUTESERVICE_API_KEY not configured in settings.")

        async with self._client() as client:
            addresses = list(dict.fromkeys([origin, destination, *waypoints]))
            located = await asyncio.gather(*(self._geocode(client, a) for a in addresses))
            coords: Dict[str, Coordinates] = dict(zip(addresses, located))

            order = list(range(len(waypoints)))
            if optimize and len(waypoints) > 1:
                order = await self._optimize(
                    client,
                    coords[origin],
                    coords[destination],
                    [coords[w] for w in waypoints],
                )

            path = [coords[origin], *(coords[waypoints[i]] for i in order), coords[destination]]
            legs = await self._directions(client, path)

        return RouteResult(legs=legs, waypoint_order=order)

    async def _geocode(self, client: httpx.AsyncClient, address: str) -> Coordinates:
        """Return (longitude, latitude) for a formatted address."""
        try:
            response = await client.get(
                f"{self.base_url}/geocode/search",
                params={"api_key": self.api_key, "text": address, "size": 1},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RoutingError(f"Error geocoding '{address}': {e}") from e

        features = data.get("features", [])
        if not features:
            raise RoutingError(f"Geocode failed for '{address}'")

        lon, lat = features[0]["geometry"]["coordinates"][:2]
        return lon, lat

    async def _post(self, client: httpx.AsyncClient, path: str, payload: dict) -> dict:
        try:
            response = await client.post(
                f"{self.base_url}{path}",
                headers={
                    "Authorization": self.api_key,
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenRouteService {path} failed: {e}")
            raise RoutingError(f"OpenRouteService API error: {e}") from e

    async def _optimize(
        self,
        client: httpx.AsyncClient,
        start: Coordinates,
        end: Coordinates,
        stops: List[Coordinates],
    ) -> List[int]:
        payload = {
            "jobs": [{"id": index + 1, "location": list(stop)} for index, stop in enumerate(stops)],
            "vehicles": [{"id": 1, "profile": "driving-car", "start": list(start), "end": list(end)}],
        }
        data = await self._post(client, "/optimization", payload)

        routes = data.get("routes") or []
        if not routes:
            raise RoutingError(f"OpenRouteService optimization returned no route: {data}")

        order = []
        for step in routes[0].get("steps", []):
            if step.get("type") == "job":
                job_id = step.get("id", step.get("job"))
                order.append(int(job_id) - 1)

        if sorted(order) != list(range(len(stops))):
            raise RoutingError("OpenRouteService optimization left waypoints unassigned")
        return order

    async def _directions(self, client: httpx.AsyncClient, path: List[Coordinates]) -> List[RouteLeg]:
        data = await self._post(
            client,
            "/v2/directions/driving-car",
            {"coordinates": [list(point) for point in path]},
        )

        routes = data.get("routes")
        if not routes:
            raise RoutingError(f"OpenRouteService error: {data}")

        segments = routes[0].get("segments") or []
        if segments:
            return [
                RouteLeg(distance_meters=s.get("distance", 0.0), duration_seconds=s.get("duration", 0.0))
                for s in segments
            ]

        # Two-point routes may come back with a summary only
        summary = routes[0].get("summary", {})
        return [RouteLeg(distance_meters=summary.get("distance", 0.0), duration_seconds=summary.get("duration", 0.0))]
