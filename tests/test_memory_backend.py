from __future__ import annotations

import csv
import io
from datetime import UTC, datetime, timedelta

import pytest

from pyparkingspot.backend.loader import BackendManifest
from pyparkingspot.backend.memory import Backend
from pyparkingspot.backend.memory.api import random_duration
from pyparkingspot.exceptions import (
    AuthError,
    CapacityExhaustedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from pyparkingspot.models import LotSpec, Reservation

_MANIFEST = BackendManifest(id="memory", name="In-memory demo data", remote=False)


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def _backend(clock: _Clock | None = None, **kwargs) -> Backend:
    return Backend(None, _MANIFEST, clock=clock or _Clock(), **kwargs)


def _assert_counters(backend: Backend) -> None:
    for lot in backend.catalog:
        assert lot.available_spots + lot.occupied_spots == lot.total_spots


@pytest.mark.asyncio
async def test_login_roles() -> None:
    backend = _backend()
    session = await backend.login("admin", "whatever")
    assert session.token == "demo-token"
    assert session.identity.is_admin
    session = await backend.login("jane", "pw")
    assert session.identity.role == "user"


@pytest.mark.asyncio
async def test_login_requires_both_fields() -> None:
    backend = _backend()
    with pytest.raises(ValidationError, match="username and password"):
        await backend.login("jane", "")
    assert backend.identity is None


@pytest.mark.asyncio
async def test_register_rejects_duplicates() -> None:
    backend = _backend()
    await backend.register("jane", "jane@example.com", "secret1", "secret1")
    with pytest.raises(ValidationError, match="already exists"):
        await backend.register("jane", "jane@example.com", "secret1", "secret1")
    with pytest.raises(ValidationError, match="do not match"):
        await backend.register("john", "john@example.com", "secret1", "secret2")


@pytest.mark.asyncio
async def test_book_then_release_scenario() -> None:
    clock = _Clock()
    backend = _backend(clock)
    await backend.login("demo", "pw")

    reservation = await backend.book("1")
    lot = backend.catalog.get("1")
    assert (lot.available_spots, lot.occupied_spots) == (17, 33)
    assert reservation.status == "active"
    assert reservation.cost == 40.0
    assert reservation.lot_id == "1"
    assert reservation.spot_number == 33
    history = await backend.list_reservations()
    assert history[0] == reservation

    clock.advance(hours=2, minutes=10)
    receipt = await backend.release(reservation.id)
    lot = backend.catalog.get("1")
    assert (lot.available_spots, lot.occupied_spots) == (18, 32)
    assert receipt.duration_hours == 3
    assert receipt.cost == 120.0
    assert receipt.reservation.status == "completed"
    assert receipt.reservation.end_time == "2024-05-01T11:10:00Z"
    assert (await backend.list_reservations())[0] == receipt.reservation
    _assert_counters(backend)


@pytest.mark.asyncio
async def test_release_twice_does_not_double_increment() -> None:
    backend = _backend()
    await backend.login("jane", "pw")
    reservation = await backend.book("2")
    await backend.release(reservation.id)
    before = backend.catalog.get("2")
    with pytest.raises(InvalidStateError):
        await backend.release(reservation.id)
    assert backend.catalog.get("2") == before


@pytest.mark.asyncio
async def test_release_unknown_reservation() -> None:
    backend = _backend()
    await backend.login("jane", "pw")
    with pytest.raises(InvalidStateError):
        await backend.release("999")


@pytest.mark.asyncio
async def test_booking_full_lot_is_a_no_op() -> None:
    backend = _backend()
    await backend.login("admin", "pw")
    lot = await backend.create_lot(LotSpec(name="Tiny", price_per_hour=10, total_spots=1))
    await backend.login("jane", "pw")
    await backend.book(lot.id)
    full = backend.catalog.get(lot.id)
    history = await backend.list_reservations()

    with pytest.raises(CapacityExhaustedError):
        await backend.book(lot.id)
    assert backend.catalog.get(lot.id) == full
    assert await backend.list_reservations() == history


@pytest.mark.asyncio
async def test_spot_numbers_are_reused_after_release() -> None:
    backend = _backend(seed=False)
    await backend.login("admin", "pw")
    lot = await backend.create_lot(LotSpec(name="Two", price_per_hour=10, total_spots=2))
    first = await backend.book(lot.id)
    second = await backend.book(lot.id)
    assert (first.spot_number, second.spot_number) == (1, 2)
    await backend.release(first.id)
    third = await backend.book(lot.id)
    assert third.spot_number == 1


@pytest.mark.asyncio
async def test_create_lot_updates_dashboard() -> None:
    backend = _backend()
    await backend.login("admin", "pw")
    before = await backend.get_dashboard_stats()
    lot = await backend.create_lot(LotSpec(name="X", price_per_hour=40, total_spots=10))
    after = await backend.get_dashboard_stats()

    assert (lot.available_spots, lot.occupied_spots) == (10, 0)
    assert lot.address == "Demo Address"
    assert lot.pincode == "000000"
    assert lot in await backend.list_lots()
    assert after.total_spots == before.total_spots + 10
    assert after.available_spots == before.available_spots + 10
    assert after.total_lots == before.total_lots + 1


@pytest.mark.asyncio
async def test_create_lot_validation() -> None:
    backend = _backend()
    await backend.login("admin", "pw")
    with pytest.raises(ValidationError):
        await backend.create_lot(LotSpec(name="", price_per_hour=40, total_spots=10))
    with pytest.raises(ValidationError):
        await backend.create_lot(LotSpec(name="X", price_per_hour=0, total_spots=10))
    assert len(backend.catalog) == 3


@pytest.mark.asyncio
async def test_delete_lot_rules() -> None:
    backend = _backend()
    await backend.login("admin", "pw")
    with pytest.raises(InvalidStateError):
        await backend.delete_lot("1")
    lot = await backend.create_lot(LotSpec(name="Empty", price_per_hour=5, total_spots=3))
    await backend.delete_lot(lot.id)
    assert lot.id not in backend.catalog
    with pytest.raises(NotFoundError):
        await backend.delete_lot(lot.id)


@pytest.mark.asyncio
async def test_update_lot_keeps_occupancy() -> None:
    backend = _backend()
    await backend.login("admin", "pw")
    lot = await backend.update_lot(
        "1",
        LotSpec(name="City Center", price_per_hour=45, total_spots=60, address="MG Road"),
    )
    assert (lot.total_spots, lot.available_spots, lot.occupied_spots) == (60, 28, 32)
    assert lot.pincode == "000000"


@pytest.mark.asyncio
async def test_admin_operations_require_admin() -> None:
    backend = _backend()
    with pytest.raises(AuthError):
        await backend.list_lots()
    await backend.login("jane", "pw")
    with pytest.raises(AuthError):
        await backend.get_dashboard_stats()
    with pytest.raises(AuthError):
        await backend.create_lot(LotSpec(name="X", price_per_hour=1, total_spots=1))
    with pytest.raises(AuthError):
        await backend.list_users()


@pytest.mark.asyncio
async def test_list_users_counts_reservations() -> None:
    backend = _backend()
    await backend.login("admin", "pw")
    users = {user.username: user for user in await backend.list_users()}
    assert users["admin"].role == "admin"
    assert users["demo"].reservation_count == 3


@pytest.mark.asyncio
async def test_export_csv_lists_history() -> None:
    backend = _backend()
    await backend.login("demo", "pw")
    content = (await backend.export_csv()).decode("utf-8")
    rows = list(csv.DictReader(io.StringIO(content)))
    assert [row["id"] for row in rows] == ["101", "102", "103"]
    assert rows[1]["status"] == "completed"
    assert rows[1]["cost"] == "90.00"


@pytest.mark.asyncio
async def test_custom_duration_function() -> None:
    def _four_hours(reservation: Reservation, now: datetime) -> int:
        return 4

    backend = _backend(duration=_four_hours)
    await backend.login("jane", "pw")
    reservation = await backend.book("3")
    receipt = await backend.release(reservation.id)
    assert receipt.cost == 240.0


@pytest.mark.asyncio
async def test_invalid_duration_leaves_reservation_active() -> None:
    backend = _backend(duration=lambda reservation, now: 0)
    await backend.login("jane", "pw")
    reservation = await backend.book("3")
    before = backend.catalog.get("3")
    with pytest.raises(ValidationError):
        await backend.release(reservation.id)
    assert backend.catalog.get("3") == before
    assert (await backend.list_reservations())[0].status == "active"


def test_random_duration_range() -> None:
    reservation = Reservation(id="1", lot_id="1", lot_name="A", status="active", cost=1.0)
    now = datetime(2024, 1, 1, tzinfo=UTC)
    values = {random_duration(reservation, now) for _ in range(200)}
    assert values <= {1, 2, 3, 4, 5}
