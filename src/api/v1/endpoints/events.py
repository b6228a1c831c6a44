from fastapi import APIRouter, Depends, status
import logging

from src.core.context import AppContext, get_app_context
from src.models.events import DocumentChangeEvent, DocumentCreatedEvent
from src.services import event_handlers

router = APIRouter()
logger = logging.getLogger(__name__)

# Ingress for document-store change events. Handlers log and absorb their own
# failures, so every delivered event is acknowledged with 202.


@router.post("/rides/{ride_id}/created", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def ride_created(
    ride_id: str,
    event: DocumentCreatedEvent,
    ctx: AppContext = Depends(get_app_context),
):
    results = await event_handlers.on_ride_created(ctx, ride_id, event.data)
    return {"handled": True, "chunkCount": len(results)}


@router.post("/rides/{ride_id}/updated", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def ride_updated(
    ride_id: str,
    event: DocumentChangeEvent,
    ctx: AppContext = Depends(get_app_context),
):
    results = await event_handlers.on_ride_updated(ctx, ride_id, event.before, event.after)
    await event_handlers.on_ride_manual_participants_updated(
        ctx, ride_id, event.before, event.after
    )
    return {"handled": True, "chunkCount": len(results)}


@router.post(
    "/rides/{ride_id}/participants/{uid}/written",
    response_model=dict,
    status_code=status.HTTP_202_ACCEPTED,
)
async def participant_written(
    ride_id: str,
    uid: str,
    event: DocumentChangeEvent,
    ctx: AppContext = Depends(get_app_context),
):
    logger.debug(
        f"Participant {uid} of ride {ride_id} written (before={event.before_exists}, after={event.after_exists})"
    )
    await event_handlers.on_participant_write(
        ctx, ride_id, event.before_exists, event.after_exists
    )
    return {"handled": True}


@router.post("/users/{uid}/created", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def user_created(
    uid: str,
    event: DocumentCreatedEvent,
    ctx: AppContext = Depends(get_app_context),
):
    results = await event_handlers.on_user_created(ctx, uid, event.data)
    return {"handled": True, "chunkCount": len(results)}


@router.post("/board-posts/{post_id}/created", response_model=dict, status_code=status.HTTP_202_ACCEPTED)
async def board_post_created(
    post_id: str,
    event: DocumentCreatedEvent,
    ctx: AppContext = Depends(get_app_context),
):
    results = await event_handlers.on_board_post_created(ctx, post_id, event.data)
    return {"handled": True, "chunkCount": len(results)}
