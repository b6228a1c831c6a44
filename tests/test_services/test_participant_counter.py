"""
Tests for the split participant counters of a ride.
"""

import random

import pytest

from src.models.ride import RideBase
from src.services import participant_counter
from src.services.participant_counter import counters_after_delta, resolve_base_self
from tests.mocks import FakeFirestore, make_ride

RIDE = "rides/r1"


def _counters(db, path=RIDE):
    data = db.data(path)
    return data.get("participantsCountSelf"), data.get("participantsCountTotal")


def _assert_sum_invariant(db, path=RIDE):
    data = db.data(path)
    assert data["participantsCountTotal"] == data["participantsCountSelf"] + len(data["manualParticipants"])


# =============================================================================
# Self-count schema migrations
# =============================================================================


class TestResolveBaseSelf:
    def test_split_counter_wins(self):
        ride = RideBase(**make_ride(manual_participants=["a"], participantsCountSelf=4, participantsCountTotal=99))
        value, migration = resolve_base_self(ride)
        assert (value, migration.name) == (4, "split-counter")

    def test_backfill_from_total(self):
        ride = RideBase(**make_ride(manual_participants=["a", "b"], participantsCountTotal=7))
        value, migration = resolve_base_self(ride)
        assert (value, migration.version) == (5, 2)

    def test_backfill_from_legacy_counter(self):
        ride = RideBase(**make_ride(manual_participants=["a"], participantsCount=3))
        value, migration = resolve_base_self(ride)
        assert (value, migration.name) == (2, "legacy-counter")

    def test_no_counter_at_all(self):
        value, migration = resolve_base_self(RideBase(**make_ride()))
        assert (value, migration.version) == (0, 0)

    def test_non_numeric_values_are_skipped(self):
        ride = RideBase(**make_ride(participantsCountSelf="3", participantsCountTotal=True, participantsCount=2))
        value, migration = resolve_base_self(ride)
        assert (value, migration.name) == (2, "legacy-counter")


class TestCountersAfterDelta:
    def test_increment(self):
        counters = counters_after_delta(RideBase(**make_ride(manual_participants=["a"], participantsCountSelf=2)), 1)
        assert (counters.participants_count_self, counters.participants_count_total) == (3, 4)

    def test_decrement_at_zero_is_clamped(self):
        counters = counters_after_delta(RideBase(**make_ride(participantsCountSelf=0)), -1)
        assert counters.participants_count_self == 0
        assert counters.participants_count_total == 0

    def test_negative_backfill_is_clamped(self):
        # Total smaller than the manual list, e.g. written before a manual edit was counted
        ride = RideBase(**make_ride(manual_participants=["a", "b", "c"], participantsCountTotal=1))
        counters = counters_after_delta(ride, 0)
        assert (counters.participants_count_self, counters.participants_count_total) == (0, 3)


# =============================================================================
# Transactions against the store
# =============================================================================


class TestApplyDelta:
    @pytest.mark.asyncio
    async def test_join_and_leave(self, fake_db):
        fake_db.seed(RIDE, make_ride(manual_participants=["x"], participantsCountSelf=1, participantsCountTotal=2))

        await participant_counter.apply_delta(fake_db, "r1", 1)
        assert _counters(fake_db) == (2, 3)

        await participant_counter.apply_delta(fake_db, "r1", -1)
        assert _counters(fake_db) == (1, 2)
        assert fake_db.transaction_commits == 2

    @pytest.mark.asyncio
    async def test_leave_with_zero_self_count_stays_zero(self, fake_db):
        fake_db.seed(RIDE, make_ride(participantsCountSelf=0, participantsCountTotal=0))

        counters = await participant_counter.apply_delta(fake_db, "r1", -1)

        assert counters.participants_count_self == 0
        assert _counters(fake_db) == (0, 0)

    @pytest.mark.asyncio
    async def test_legacy_document_gets_split_fields(self, fake_db):
        fake_db.seed(RIDE, make_ride(manual_participants=["x", "y"], participantsCount=5))

        await participant_counter.apply_delta(fake_db, "r1", 1)

        assert _counters(fake_db) == (4, 6)

    @pytest.mark.asyncio
    async def test_missing_ride_is_a_no_op(self, fake_db):
        counters = await participant_counter.apply_delta(fake_db, "gone", 1)

        assert counters is None
        assert "rides/gone" not in fake_db.docs
        assert fake_db.transaction_commits == 1

    @pytest.mark.asyncio
    async def test_rejects_other_deltas(self, fake_db):
        with pytest.raises(ValueError):
            await participant_counter.apply_delta(fake_db, "r1", 2)

    @pytest.mark.asyncio
    async def test_retried_transaction_applies_delta_once(self, fake_db):
        fake_db.seed(RIDE, make_ride(participantsCountSelf=1, participantsCountTotal=1))
        fake_db.transaction_conflicts.append(lambda: None)

        await participant_counter.apply_delta(fake_db, "r1", 1)

        assert _counters(fake_db) == (2, 2)
        assert fake_db.transaction_attempts == 2
        assert fake_db.transaction_commits == 1

    @pytest.mark.asyncio
    async def test_retry_builds_on_competing_write(self, fake_db):
        fake_db.seed(RIDE, make_ride(manual_participants=["m"], participantsCountSelf=1, participantsCountTotal=2))

        def competing_join():
            fake_db.docs[RIDE].update({"participantsCountSelf": 2, "participantsCountTotal": 3})

        fake_db.transaction_conflicts.append(competing_join)

        await participant_counter.apply_delta(fake_db, "r1", 1)

        assert _counters(fake_db) == (3, 4)


class TestReconcile:
    @pytest.mark.asyncio
    async def test_overwrites_drifted_counters(self, fake_db):
        fake_db.seed(RIDE, make_ride(manual_participants=["x"], participantsCountSelf=9, participantsCountTotal=10))
        fake_db.seed(f"{RIDE}/participants/u1", {})
        fake_db.seed(f"{RIDE}/participants/u2", {})

        counters = await participant_counter.reconcile(fake_db, "r1")

        assert (counters.participants_count_self, counters.participants_count_total) == (2, 3)
        assert _counters(fake_db) == (2, 3)

    @pytest.mark.asyncio
    async def test_counts_without_aggregation_support(self):
        db = FakeFirestore(supports_count=False)
        db.seed(RIDE, make_ride())
        db.seed(f"{RIDE}/participants/u1", {})

        await participant_counter.reconcile(db, "r1")

        assert _counters(db) == (1, 1)

    @pytest.mark.asyncio
    async def test_missing_ride_is_a_no_op(self, fake_db):
        assert await participant_counter.reconcile(fake_db, "gone") is None
        assert fake_db.docs == {}

    @pytest.mark.asyncio
    async def test_sum_invariant_after_random_sequences(self, fake_db):
        rng = random.Random(7)
        fake_db.seed(RIDE, make_ride(manual_participants=["m1", "m2"]))
        members = set()

        for step in range(60):
            uid = f"u{rng.randrange(6)}"
            action = rng.choice(["join", "leave", "dup-leave", "reconcile"])
            if action == "join" and uid not in members:
                members.add(uid)
                fake_db.seed(f"{RIDE}/participants/{uid}", {})
                await participant_counter.apply_delta(fake_db, "r1", 1)
            elif action == "leave" and uid in members:
                members.discard(uid)
                fake_db.docs.pop(f"{RIDE}/participants/{uid}")
                await participant_counter.apply_delta(fake_db, "r1", -1)
            elif action == "dup-leave":
                await participant_counter.apply_delta(fake_db, "r1", -1)
            else:
                await participant_counter.reconcile(fake_db, "r1")

            _assert_sum_invariant(fake_db)
            assert fake_db.data(RIDE)["participantsCountSelf"] >= 0

        await participant_counter.reconcile(fake_db, "r1")
        assert _counters(fake_db) == (len(members), len(members) + 2)


class TestRefreshForManualChange:
    @pytest.mark.asyncio
    async def test_recomputes_total_only(self, fake_db):
        fake_db.seed(RIDE, make_ride(manual_participants=["a", "b", "c"], participantsCountSelf=4, participantsCountTotal=5))

        await participant_counter.refresh_for_manual_change(fake_db, "r1")

        assert _counters(fake_db) == (4, 7)

    @pytest.mark.asyncio
    async def test_backfills_self_from_total_for_old_documents(self, fake_db):
        # Total was 5 with a single manual entry; now there are two
        fake_db.seed(RIDE, make_ride(manual_participants=["a", "b"], participantsCountTotal=5))

        await participant_counter.refresh_for_manual_change(fake_db, "r1")

        assert _counters(fake_db) == (3, 5)

    @pytest.mark.asyncio
    async def test_missing_ride(self, fake_db):
        assert await participant_counter.refresh_for_manual_change(fake_db, "gone") is None


class TestInitializeAndBackfill:
    @pytest.mark.asyncio
    async def test_initialize_counts_manual_participants(self, fake_db):
        fake_db.seed(RIDE, make_ride(manual_participants=["a", "b"]))

        await participant_counter.initialize(fake_db, "r1")

        assert _counters(fake_db) == (0, 2)

    @pytest.mark.asyncio
    async def test_initialize_tolerates_missing_list(self, fake_db):
        fake_db.seed(RIDE, {"title": "Senza lista"})

        await participant_counter.initialize(fake_db, "r1")

        assert _counters(fake_db) == (0, 0)

    @pytest.mark.asyncio
    async def test_initialize_keeps_self_count_of_earlier_join(self, fake_db):
        # Participant event handled before the creation event
        fake_db.seed(RIDE, make_ride(manual_participants=["a"], participantsCountSelf=1, participantsCountTotal=2))

        counters = await participant_counter.initialize(fake_db, "r1")

        assert counters.participants_count_self == 1
        assert _counters(fake_db) == (1, 2)

    @pytest.mark.asyncio
    async def test_initialize_missing_ride(self, fake_db):
        assert await participant_counter.initialize(fake_db, "gone") is None
        assert "rides/gone" not in fake_db.docs

    @pytest.mark.asyncio
    async def test_backfill_reconciles_every_ride(self, fake_db):
        fake_db.seed("rides/r1", make_ride(manual_participants=["a"]))
        fake_db.seed("rides/r1/participants/u1", {})
        fake_db.seed("rides/r2", make_ride(participantsCount=12))

        report = await participant_counter.backfill_all(fake_db)

        assert (report.processed, report.failed) == (2, 0)
        assert _counters(fake_db, "rides/r1") == (1, 2)
        assert _counters(fake_db, "rides/r2") == (0, 0)
