from datetime import datetime, timezone
from typing import List, Optional, Set

from pydantic import ValidationError

from dispatch_app.core.config import settings
from dispatch_app.core.logger import get_logger
from dispatch_app.models.draft import DispatchDraft, DraftSummary
from dispatch_app.models.vehicle import VehicleStatus
from dispatch_app.services.storage import KeyValueStorage
from dispatch_app.services.vehicle_pool import VehiclePool

logger = get_logger(__name__)


def _is_consistent(draft: DispatchDraft) -> bool:
    ids = [v.id for v in draft.vehicles]
    if len(ids) != len(set(ids)):
        return False
    seen = set()
    for vehicle in draft.vehicles:
        if vehicle.occupancy > vehicle.capacity:
            return False
        if (vehicle.status == VehicleStatus.AVAILABLE) != (vehicle.occupancy == 0):
            return False
        for pid in vehicle.passenger_ids():
            if pid in seen:
                return False
            seen.add(pid)
    return True


class DraftStore:
    """
    Recoverable snapshots of in-progress dispatch work.

    Drafts are a cache: saving never raises and a draft that cannot be read
    back is dropped as if it never existed.
    """

    def __init__(self, storage: KeyValueStorage, prefix: Optional[str] = None):
        self.storage = storage
        self.prefix = prefix or settings.DRAFT_KEY_PREFIX
        self._unsaved: Set[str] = set()

    def key(self, request_id: str) -> str:
        return f"{self.prefix}-{request_id}"

    def save(self, request_id: str, pool: VehiclePool, passenger_count: int, reference: Optional[str] = None) -> bool:
        draft = DispatchDraft(
            transport_request_id=request_id,
            vehicles=pool.non_default_vehicles(),
            passenger_count=passenger_count,
            last_modified=datetime.now(timezone.utc).isoformat(),
            reference=reference or f"TR-{request_id}",
        )
        try:
            self.storage.set(self.key(request_id), draft.model_dump_json())
        except Exception as e:
            # The next mutation saves the full pool again
            self._unsaved.add(request_id)
            logger.warning(f"Draft save failed for {request_id}, will retry on next change: {e}")
            return False

        if request_id in self._unsaved:
            self._unsaved.discard(request_id)
            logger.info(f"Draft for {request_id} saved after an earlier failure")
        return True

    def has_unsaved_changes(self, request_id: str) -> bool:
        return request_id in self._unsaved

    def _read(self, key: str) -> Optional[DispatchDraft]:
        try:
            raw = self.storage.get(key)
        except Exception as e:
            logger.warning(f"Draft {key} could not be read: {e}")
            return None
        if raw is None:
            return None

        try:
            draft = DispatchDraft.model_validate_json(raw)
        except ValidationError:
            draft = None
        if draft is None or not _is_consistent(draft):
            logger.info(f"Discarding unreadable draft {key}")
            self._discard(key)
            return None
        return draft

    def _discard(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except Exception as e:
            logger.warning(f"Could not delete draft {key}: {e}")

    def load(self, request_id: str) -> Optional[DispatchDraft]:
        key = self.key(request_id)
        draft = self._read(key)
        if draft is not None and draft.transport_request_id != request_id:
            logger.info(f"Draft {key} belongs to {draft.transport_request_id}, discarding")
            self._discard(key)
            return None
        return draft

    def delete(self, request_id: str) -> None:
        self._unsaved.discard(request_id)
        self._discard(self.key(request_id))

    def list_drafts(self) -> List[DraftSummary]:
        summaries = []
        for key in self.storage.keys(f"{self.prefix}-"):
            draft = self._read(key)
            if draft is None:
                continue
            total = draft.passenger_count
            assigned = draft.assigned_count
            summaries.append(DraftSummary(
                transport_request_id=draft.transport_request_id,
                reference=draft.reference,
                vehicle_count=len(draft.vehicles),
                passenger_count=total,
                assigned_count=assigned,
                completion_percentage=round(assigned * 100 / total) if total else 0,
                last_modified=draft.last_modified,
            ))
        summaries.sort(key=lambda s: s.last_modified, reverse=True)
        return summaries
