from firebase_admin import firestore
from typing import Callable, List, Optional

from src.models.ride import RideBase, RideCounters
import logging

logger = logging.getLogger(__name__)

# Firestore collection names
RIDES_COLLECTION = "rides"
PARTICIPANTS_COLLECTION = "participants"


def _ride_ref(db: firestore.AsyncClient, ride_id: str):
    return db.collection(RIDES_COLLECTION).document(ride_id)


async def update_ride_counters_in_transaction(
    db: firestore.AsyncClient,
    ride_id: str,
    compute: Callable[[RideBase], RideCounters],
) -> Optional[RideCounters]:
    """
    Reads the ride and writes the counters returned by `compute` in one transaction.
    Returns None, without writing, when the ride does not exist.

    Firestore retries the whole function on contention, so `compute` may run
    more than once and must not have side effects.
    """
    ride_ref = _ride_ref(db, ride_id)

    @firestore.async_transactional
    async def _update(transaction) -> Optional[RideCounters]:
        doc_snapshot = await ride_ref.get(transaction=transaction)
        if not doc_snapshot.exists:
            return None
        counters = compute(RideBase(**(doc_snapshot.to_dict() or {})))
        transaction.update(ride_ref, counters.to_firestore())
        return counters

    return await _update(db.transaction())


async def count_participants(db: firestore.AsyncClient, ride_id: str) -> int:
    """
    Counts the self-joined participants of a ride.
    Uses a server-side count aggregation when the client supports it.
    """
    participants_ref = _ride_ref(db, ride_id).collection(PARTICIPANTS_COLLECTION)
    if hasattr(participants_ref, "count"):
        results = await participants_ref.count(alias="count").get()
        return int(results[0][0].value)
    return len([doc async for doc in participants_ref.stream()])


async def list_ride_ids(db: firestore.AsyncClient) -> List[str]:
    return [doc_ref.id async for doc_ref in db.collection(RIDES_COLLECTION).list_documents()]
