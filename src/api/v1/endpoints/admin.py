from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
import logging

from src.core.context import AppContext, get_app_context
from src.services import participant_counter

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/participants/backfill", response_model=dict, status_code=status.HTTP_200_OK)
async def backfill_participants_counts(ctx: AppContext = Depends(get_app_context)):
    """
    Recomputes the participant counters of every ride from the participants
    sub-collections. One-shot maintenance endpoint, off unless enabled in settings.
    """
    if not ctx.settings.PARTICIPANTS_BACKFILL_ENABLED:
        return JSONResponse(status_code=status.HTTP_410_GONE, content={"error": "gone"})

    report = await participant_counter.backfill_all(ctx.db)
    return report.model_dump()
