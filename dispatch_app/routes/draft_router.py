from typing import List

from fastapi import APIRouter, Depends

from dispatch_app.core.dependencies import get_draft_store
from dispatch_app.core.logger import get_logger
from dispatch_app.models.draft import DraftSummary
from dispatch_app.models.response import MessageResponse
from dispatch_app.services.draft_store import DraftStore

draft_router = APIRouter(prefix="/drafts", tags=["Drafts"])
logger = get_logger("draft_router")


@draft_router.get("", response_model=List[DraftSummary])
async def list_drafts(drafts: DraftStore = Depends(get_draft_store)):
    """
    Saved dispatch drafts, most recently modified first.
    """
    return drafts.list_drafts()


@draft_router.delete("/{request_id}", response_model=MessageResponse)
async def delete_draft(request_id: str, drafts: DraftStore = Depends(get_draft_store)):
    drafts.delete(request_id)
    logger.info(f"Draft for {request_id} deleted on request")
    return MessageResponse(message="Draft deleted")
