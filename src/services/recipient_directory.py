import logging

from firebase_admin import firestore

from src.crud import crud_user
from src.models.recipients import Audience, RecipientFilter, RecipientSelection
from src.models.user import Role, UserInDB

logger = logging.getLogger(__name__)


def is_eligible(user: UserInDB, recipient_filter: RecipientFilter) -> bool:
    if recipient_filter.audience == Audience.APPROVED and user.approved is not True:
        return False
    if user.disabled is True:
        return False
    return not user.opted_out_of(recipient_filter.opt_out)


async def select_recipients(
    db: firestore.AsyncClient, recipient_filter: RecipientFilter
) -> RecipientSelection:
    """
    Collects the push tokens of every user matching the filter.

    Tokens are deduplicated across users: the same device can be registered
    on more than one account after a reinstall, and it must be notified once.
    """
    if recipient_filter.audience == Audience.OWNERS:
        users = await crud_user.get_users_where(db, "role", Role.OWNER.value)
    else:
        users = await crud_user.get_users_where(db, "approved", True)

    tokens = set()
    for user in users:
        if is_eligible(user, recipient_filter):
            tokens.update(user.expo_push_tokens)

    logger.debug(
        f"Selected {len(tokens)} token(s) from {len(users)} {recipient_filter.audience.value} user(s)"
    )
    return RecipientSelection(tokens=tokens, considered_user_count=len(users))
