import logging
from typing import Iterable

from firebase_admin import firestore
from firebase_admin.exceptions import FirebaseError

from src.crud import crud_user

logger = logging.getLogger(__name__)


async def reclaim(db: firestore.AsyncClient, tokens: Iterable[str]) -> None:
    """
    Removes tokens the provider reported as permanently undeliverable from
    every user holding them.

    Best effort: a failure on one token is logged and the next token is still
    processed. Running it again for an already removed token is a no-op.
    """
    unique_tokens = list(dict.fromkeys(tokens))
    if not unique_tokens:
        return
    logger.info(f"Reclaiming {len(unique_tokens)} invalid push token(s)")

    for token in unique_tokens:
        try:
            user_snapshots = await crud_user.get_user_snapshots_with_token(db, token)
            if not user_snapshots:
                logger.info(f"No user holds token {token}")
                continue
            updated = await crud_user.remove_token_from_users(db, token, user_snapshots)
            logger.info(f"Removed token {token} from {updated} user(s)")
        except FirebaseError as e:
            logger.error(f"Firebase error removing token {token}: {e}", exc_info=True)
        except Exception as e:
            logger.error(f"Unexpected error removing token {token}: {e}", exc_info=True)
