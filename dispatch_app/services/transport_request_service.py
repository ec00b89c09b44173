from typing import Any, Dict, Optional

import httpx

from dispatch_app.core.config import settings
from dispatch_app.core.errors import BackendError
from dispatch_app.core.logger import get_logger
from dispatch_app.models.transport_request import TransportRequest

logger = get_logger("transport_request_service")

TRANSPORT_REQUESTS_ENDPOINT = "/Demande/transport-requests"


class TransportRequestService:
    """Client for the backend transport-request API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.BACKEND_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.BACKEND_TOKEN
        self.timeout = timeout or settings.BACKEND_TIMEOUT
        self._transport = transport

    def with_token(self, token: Optional[str]) -> "TransportRequestService":
        """Same backend, calls made on behalf of the given operator token."""
        return TransportRequestService(self.base_url, token or self.token, self.timeout, self._transport)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, endpoint: str, json: Optional[Dict[str, Any]] = None) -> Any:
        full_url = f"{self.base_url}{endpoint}"
        logger.info(f"Backend {method} request to {full_url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(method, full_url, headers=self._headers(), json=json)
        except httpx.HTTPError as e:
            logger.error(f"Backend {method} {endpoint} unreachable: {e}")
            raise BackendError(f"Backend unreachable: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"Backend error {resp.status_code}: {resp.text}")
            raise BackendError(
                f"Backend returned {resp.status_code} for {method} {endpoint}",
                upstream_status=resp.status_code,
                detail=resp.text,
            )
        return resp.json()

    async def get_transport_request_by_id(self, request_id: str) -> TransportRequest:
        data = await self._request("GET", f"{TRANSPORT_REQUESTS_ENDPOINT}/{request_id}")
        return TransportRequest.model_validate(data)

    async def update_transport_request(self, request_id: str, patch: Dict[str, Any]) -> TransportRequest:
        logger.info(f"Updating transport request {request_id} with {len(patch.get('employeeTransports', []))} assignments")
        data = await self._request("PATCH", f"{TRANSPORT_REQUESTS_ENDPOINT}/{request_id}", json=patch)
        return TransportRequest.model_validate(data)
