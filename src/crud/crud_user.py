from firebase_admin import firestore
from google.cloud.firestore_v1 import FieldFilter
from typing import Any, List

from src.models.user import UserInDB
import logging

logger = logging.getLogger(__name__)

# Firestore collection name
USERS_COLLECTION = "users"
PUSH_TOKENS_FIELD = "expoPushTokens"


def _to_user(doc_snapshot) -> UserInDB:
    user_db_data = doc_snapshot.to_dict() or {}
    user_db_data["id"] = doc_snapshot.id
    return UserInDB(**user_db_data)


async def get_users_where(
    db: firestore.AsyncClient, field: str, value: Any
) -> List[UserInDB]:
    """
    Retrieves every user whose `field` equals `value`.
    """
    query = db.collection(USERS_COLLECTION).where(
        filter=FieldFilter(field, "==", value)
    )
    users_list = []
    async for doc_snapshot in query.stream():
        if doc_snapshot.exists:
            users_list.append(_to_user(doc_snapshot))
    return users_list


async def get_user_snapshots_with_token(db: firestore.AsyncClient, token: str) -> list:
    """
    Retrieves raw snapshots of every user holding `token` in expoPushTokens.
    The snapshots keep their `reference` so callers can write them back.
    """
    query = db.collection(USERS_COLLECTION).where(
        filter=FieldFilter(PUSH_TOKENS_FIELD, "array_contains", token)
    )
    return [doc_snapshot async for doc_snapshot in query.stream() if doc_snapshot.exists]


async def remove_token_from_users(
    db: firestore.AsyncClient, token: str, user_snapshots: list
) -> int:
    """
    Removes exactly `token` from each given user's token list in one write batch.
    Other tokens are left untouched. Returns the number of users updated.
    """
    if not user_snapshots:
        return 0

    batch = db.batch()
    for doc_snapshot in user_snapshots:
        user_data = doc_snapshot.to_dict() or {}
        tokens = user_data.get(PUSH_TOKENS_FIELD)
        tokens = tokens if isinstance(tokens, list) else []
        filtered = [tok for tok in tokens if tok != token]
        logger.info(
            f"Removing token {token} from user {doc_snapshot.id} (before={len(tokens)}, after={len(filtered)})"
        )
        batch.update(doc_snapshot.reference, {PUSH_TOKENS_FIELD: filtered})

    await batch.commit()
    return len(user_snapshots)
