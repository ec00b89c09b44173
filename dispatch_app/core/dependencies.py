from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from dispatch_app.core.config import settings
from dispatch_app.core.errors import BackendError
from dispatch_app.services.draft_store import DraftStore
from dispatch_app.services.route_estimator import RouteEstimator
from dispatch_app.services.routing_service import OpenRouteServiceClient
from dispatch_app.services.session_registry import SessionRegistry
from dispatch_app.services.storage import FileStorage
from dispatch_app.services.transport_request_service import TransportRequestService
from dispatch_app.services.user_service import get_current_user


@lru_cache
def get_draft_store() -> DraftStore:
    return DraftStore(FileStorage(settings.DRAFT_STORAGE_DIR))


@lru_cache
def get_sessions() -> SessionRegistry:
    return SessionRegistry()


@lru_cache
def get_estimator() -> RouteEstimator:
    return RouteEstimator(OpenRouteServiceClient())


@lru_cache
def get_backend() -> TransportRequestService:
    return TransportRequestService()


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_user(token: Optional[str] = Depends(get_bearer_token)) -> Optional[dict]:
    try:
        return await get_current_user(token)
    except BackendError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
