"""
Reactions to document-store changes.

Each handler receives the process context and the changed document data,
decides whether the change is relevant and composes the recipient directory,
the push dispatcher and the participant counter. Handlers never raise for
expected failures: the underlying write has already happened and must not be
reported as failed because a notification or a counter update did not go out.
"""

import logging
from typing import Any, Dict, List, Optional

from firebase_admin.exceptions import FirebaseError

from src.core.context import AppContext
from src.models.push import ChunkResult, ExpoPushMessage
from src.models.recipients import Audience, RecipientFilter
from src.models.ride import RIDE_STATUS_CANCELLED, RideBase
from src.models.user import NotificationCategory, Role, UserBase
from src.services import participant_counter, push_dispatcher, recipient_directory

logger = logging.getLogger(__name__)

DEFAULT_RIDE_TITLE = "Uscita"
DEFAULT_BOARD_POST_BODY = "Apri l'app per leggere la nuova comunicazione"


async def _notify(
    ctx: AppContext,
    subject: str,
    recipient_filter: RecipientFilter,
    title: str,
    body: str,
    data: Dict[str, Any],
) -> List[ChunkResult]:
    try:
        selection = await recipient_directory.select_recipients(ctx.db, recipient_filter)
        logger.info(
            f"{subject}: {recipient_filter.audience.value} users={selection.considered_user_count} "
            f"tokens collected={len(selection.tokens)}"
        )
        if not selection.tokens:
            logger.info(f"{subject}: no recipients")
            return []

        results = await push_dispatcher.dispatch(
            ExpoPushMessage(to=sorted(selection.tokens), title=title, body=body, data=data),
            http_client=ctx.http_client,
            db=ctx.db,
            settings=ctx.settings,
        )
    except FirebaseError as e:
        logger.error(f"{subject}: Firebase error while notifying: {e}", exc_info=True)
        return []
    except Exception as e:
        logger.error(f"{subject}: unexpected error while notifying: {e}", exc_info=True)
        return []

    for index, result in enumerate(results):
        logger.info(f"{subject}: chunk {index} status={result.http_status} ok={result.ok}")
    return results


async def on_ride_created(ctx: AppContext, ride_id: str, data: Optional[Dict[str, Any]]) -> List[ChunkResult]:
    data = data or {}
    ride = RideBase(**data)

    try:
        await participant_counter.initialize(ctx.db, ride_id)
    except FirebaseError as e:
        logger.error(f"Participants count init failed for ride {ride_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error initializing counts for ride {ride_id}: {e}", exc_info=True)

    title = ride.title if ride.title and ride.title.strip() else DEFAULT_RIDE_TITLE
    scheduled_at = ride.scheduled_at
    if scheduled_at is not None:
        body = f"È stata pubblicata una nuova uscita: {title} ({scheduled_at.strftime('%d/%m/%Y')})"
    else:
        body = f"È stata pubblicata una nuova uscita: {title}"

    return await _notify(
        ctx,
        f"Ride created {ride_id}",
        RecipientFilter(audience=Audience.APPROVED, opt_out=NotificationCategory.CREATED_RIDE),
        title="Nuova uscita disponibile",
        body=body,
        data={"type": "ride", "rideId": ride_id},
    )


async def on_ride_updated(
    ctx: AppContext,
    ride_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> List[ChunkResult]:
    """Notifies a cancellation, only on the transition into "cancelled"."""
    if before is None or after is None:
        logger.info(f"Ride updated {ride_id}: missing snapshot data")
        return []

    previous = RideBase(**before)
    current = RideBase(**after)
    if previous.effective_status == RIDE_STATUS_CANCELLED or current.effective_status != RIDE_STATUS_CANCELLED:
        return []

    if current.title and current.title.strip():
        body = f'L\'uscita "{current.title}" è stata annullata.'
    else:
        body = "Un'uscita è stata annullata."

    return await _notify(
        ctx,
        f"Ride cancelled {ride_id}",
        RecipientFilter(audience=Audience.APPROVED, opt_out=NotificationCategory.CANCELLED_RIDE),
        title="Uscita annullata",
        body=body,
        data={"type": "rideCancelled", "rideId": ride_id},
    )


async def on_ride_manual_participants_updated(
    ctx: AppContext,
    ride_id: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
) -> None:
    before_count = RideBase(**(before or {})).manual_count
    after_count = RideBase(**(after or {})).manual_count
    if before_count == after_count:
        return

    try:
        await participant_counter.refresh_for_manual_change(ctx.db, ride_id)
    except FirebaseError as e:
        logger.error(f"Manual participants update failed for ride {ride_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error on manual participants of ride {ride_id}: {e}", exc_info=True)


async def on_participant_write(
    ctx: AppContext, ride_id: str, before_exists: bool, after_exists: bool
) -> None:
    if not before_exists and after_exists:
        delta = 1
    elif before_exists and not after_exists:
        delta = -1
    else:
        delta = 0

    try:
        if delta != 0:
            await participant_counter.apply_delta(ctx.db, ride_id, delta)
        # Always recount, so lost or duplicated events are corrected.
        await participant_counter.reconcile(ctx.db, ride_id)
    except FirebaseError as e:
        logger.error(f"Participants count write failed for ride {ride_id}: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error counting participants of ride {ride_id}: {e}", exc_info=True)


async def on_user_created(ctx: AppContext, uid: str, data: Optional[Dict[str, Any]]) -> List[ChunkResult]:
    """Tells the owners that a new registration is waiting for approval."""
    if not data:
        logger.info(f"User created {uid}: missing data")
        return []

    user = UserBase(**data)
    if user.disabled is True:
        return []
    if user.approved is not False:
        return []
    role = user.role.lower() if user.role else Role.MEMBER.value
    if role in (Role.OWNER.value, Role.ADMIN.value):
        return []

    display_name = user.resolved_display_name(fallback=uid)
    logger.info(f"User created {uid}: pending approval, displayName={display_name}")

    return await _notify(
        ctx,
        f"User created {uid}",
        RecipientFilter(audience=Audience.OWNERS, opt_out=NotificationCategory.PENDING_USER),
        title="Nuova registrazione in attesa",
        body=f"Un nuovo utente è in attesa di approvazione: {display_name}.",
        data={"type": "pendingUser", "uid": uid},
    )


async def on_board_post_created(ctx: AppContext, post_id: str, data: Optional[Dict[str, Any]]) -> List[ChunkResult]:
    data = data or {}
    post_title = data.get("title")
    if isinstance(post_title, str) and post_title.strip():
        body = post_title.strip()
    else:
        body = DEFAULT_BOARD_POST_BODY

    return await _notify(
        ctx,
        f"Board post created {post_id}",
        RecipientFilter(audience=Audience.APPROVED, opt_out=NotificationCategory.BOARD_POST),
        title="Nuova news in bacheca",
        body=body,
        data={"type": "boardPost", "postId": post_id},
    )
