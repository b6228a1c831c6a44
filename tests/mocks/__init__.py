"""
Test doubles for the Firestore client and the Expo push service.
"""
from tests.mocks.firestore_mocks import (
    FakeFirestore,
    fake_async_transactional,
)
from tests.mocks.factories import make_ride, make_user
from tests.mocks.http_mocks import (
    ExpoPushStub,
    error_ticket,
    ok_tickets,
)

__all__ = [
    "FakeFirestore",
    "fake_async_transactional",
    "ExpoPushStub",
    "error_ticket",
    "ok_tickets",
    "make_ride",
    "make_user",
]
