"""
Participant counters of a ride.

A ride stores its participant count as two addends so that self-joins and
manual roster edits never overwrite each other:

    participantsCountTotal = participantsCountSelf + len(manualParticipants)

Every write happens inside a transaction on the single ride document.
"""

import logging
from typing import Callable, List, NamedTuple, Optional, Tuple

from firebase_admin import firestore
from firebase_admin.exceptions import FirebaseError
from pydantic import BaseModel

from src.crud import crud_ride
from src.models.ride import RideBase, RideCounters

logger = logging.getLogger(__name__)


class SelfCountMigration(NamedTuple):
    version: int
    name: str
    read: Callable[[RideBase], Optional[int]]


def _from_total(ride: RideBase) -> Optional[int]:
    if ride.participants_count_total is None:
        return None
    return ride.participants_count_total - ride.manual_count


def _from_legacy(ride: RideBase) -> Optional[int]:
    if ride.participants_count is None:
        return None
    return ride.participants_count - ride.manual_count


# Schema migration policy for the self-joined count, newest schema first.
# The first migration that can read a value wins; rides written before any
# counter existed start from zero.
#   v3  participantsCountSelf is stored as is
#   v2  only participantsCountTotal exists, manual entries are subtracted
#   v1  only the legacy participantsCount exists, manual entries are subtracted
SELF_COUNT_MIGRATIONS: List[SelfCountMigration] = [
    SelfCountMigration(3, "split-counter", lambda ride: ride.participants_count_self),
    SelfCountMigration(2, "total-counter", _from_total),
    SelfCountMigration(1, "legacy-counter", _from_legacy),
]
EMPTY_SCHEMA = SelfCountMigration(0, "empty", lambda ride: 0)


def resolve_base_self(ride: RideBase) -> Tuple[int, SelfCountMigration]:
    for migration in SELF_COUNT_MIGRATIONS:
        value = migration.read(ride)
        if value is not None:
            return value, migration
    return 0, EMPTY_SCHEMA


def counters_after_delta(ride: RideBase, delta: int, ride_id: str = "") -> RideCounters:
    base_self, migration = resolve_base_self(ride)
    next_self = base_self + delta
    if next_self < 0:
        # Clamped instead of stored; repeated warnings for one ride point at lost join events.
        logger.warning(
            f"Self participants count for ride {ride_id} would be {next_self} "
            f"(base={base_self} from {migration.name}, delta={delta}); clamped to 0"
        )
        next_self = 0
    return RideCounters(
        participants_count_self=next_self,
        participants_count_total=next_self + ride.manual_count,
    )


def counters_for_self_count(ride: RideBase, self_count: int) -> RideCounters:
    return RideCounters(
        participants_count_self=self_count,
        participants_count_total=self_count + ride.manual_count,
    )


async def apply_delta(db: firestore.AsyncClient, ride_id: str, delta: int) -> Optional[RideCounters]:
    """
    Adds +1 or -1 to the self-joined count and recomputes the total.
    Returns the written counters, or None when the ride no longer exists.
    """
    if delta not in (1, -1):
        raise ValueError(f"delta must be +1 or -1, got {delta}")

    counters = await crud_ride.update_ride_counters_in_transaction(
        db, ride_id, lambda ride: counters_after_delta(ride, delta, ride_id)
    )
    if counters is None:
        logger.info(f"Ride {ride_id} missing, participants delta {delta:+d} ignored")
        return None

    logger.info(
        f"Participants count ride={ride_id} delta={delta:+d} self={counters.participants_count_self} "
        f"total={counters.participants_count_total}"
    )
    return counters


async def reconcile(db: firestore.AsyncClient, ride_id: str) -> Optional[RideCounters]:
    """
    Recounts the participants sub-collection and overwrites both counters with
    the authoritative value, whatever the delta path wrote before.
    """
    self_count = await crud_ride.count_participants(db, ride_id)
    counters = await crud_ride.update_ride_counters_in_transaction(
        db, ride_id, lambda ride: counters_for_self_count(ride, self_count)
    )
    if counters is None:
        logger.info(f"Ride {ride_id} missing, participants count not reconciled")
        return None

    logger.info(
        f"Participants count reconciled ride={ride_id} self={counters.participants_count_self} "
        f"total={counters.participants_count_total}"
    )
    return counters


async def refresh_for_manual_change(db: firestore.AsyncClient, ride_id: str) -> Optional[RideCounters]:
    """
    Recomputes the total after the manual participants list changed.
    The self-joined count keeps its value (only backfilled or clamped).
    """
    counters = await crud_ride.update_ride_counters_in_transaction(
        db, ride_id, lambda ride: counters_after_delta(ride, 0, ride_id)
    )
    if counters is None:
        logger.info(f"Ride {ride_id} missing, manual participants change ignored")
        return None

    logger.info(
        f"Participants total refreshed ride={ride_id} total={counters.participants_count_total}"
    )
    return counters


async def initialize(db: firestore.AsyncClient, ride_id: str) -> Optional[RideCounters]:
    """
    Sets the counters of a newly created ride. Self-joins usually start at
    zero, but a participant event may have been handled first: a self count
    already stored on the ride is kept.
    """
    counters = await crud_ride.update_ride_counters_in_transaction(
        db,
        ride_id,
        lambda ride: counters_for_self_count(ride, max(ride.participants_count_self or 0, 0)),
    )
    if counters is None:
        logger.info(f"Ride {ride_id} missing, participants count not initialized")
        return None

    logger.info(
        f"Participants count initialized ride={ride_id} self={counters.participants_count_self} "
        f"total={counters.participants_count_total}"
    )
    return counters


class BackfillReport(BaseModel):
    processed: int = 0
    failed: int = 0


async def backfill_all(db: firestore.AsyncClient) -> BackfillReport:
    """Reconciles every ride. Failures are counted and logged per ride."""
    report = BackfillReport()
    for ride_id in await crud_ride.list_ride_ids(db):
        try:
            await reconcile(db, ride_id)
            report.processed += 1
        except FirebaseError as e:
            report.failed += 1
            logger.error(f"Firebase error backfilling ride {ride_id}: {e}", exc_info=True)
        except Exception as e:
            report.failed += 1
            logger.error(f"Unexpected error backfilling ride {ride_id}: {e}", exc_info=True)
    logger.info(f"Participants backfill done: processed={report.processed} failed={report.failed}")
    return report
