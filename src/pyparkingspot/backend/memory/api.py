"""In-memory backend with fabricated demo data."""

from __future__ import annotations

import csv
import io
import itertools
import logging
import random
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import aiohttp

from ...catalog import Catalog
from ...exceptions import InvalidStateError, ValidationError
from ...models import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    DashboardStats,
    Identity,
    LotSpec,
    ParkingLot,
    ReleaseReceipt,
    Reservation,
    Session,
    UserAccount,
)
from ...stats import compute_dashboard_stats
from ...util import billable_hours, format_utc_timestamp, round_money
from ..base import BaseBackend
from ..loader import BackendManifest
from .const import (
    ADMIN_USERNAME,
    CSV_FIELDS,
    DEFAULT_ADDRESS,
    DEFAULT_PINCODE,
    DEMO_TOKEN,
    DEMO_USERNAME,
    SEED_LOTS,
    SEED_RESERVATIONS,
    SEED_USERS,
)

_LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]
DurationFn = Callable[[Reservation, datetime], int]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def elapsed_duration(reservation: Reservation, now: datetime) -> int:
    """Bill whole elapsed hours since the booking, at least one."""
    if not reservation.start_time:
        return 1
    return billable_hours(reservation.start_time, format_utc_timestamp(now))


def random_duration(reservation: Reservation, now: datetime) -> int:
    """Pick a 1-5 hour stay, the way the old demo screens did."""
    return random.randint(1, 5)


class Backend(BaseBackend):
    """Backend that keeps every lot, account and reservation in memory."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None,
        manifest: BackendManifest,
        *,
        base_url: str | None = None,
        api_uri: str | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        retry_count: int = 0,
        clock: Clock | None = None,
        duration: DurationFn | None = None,
        seed: bool = True,
    ) -> None:
        """Initialize the backend, optionally with the demo data set."""
        super().__init__(
            session,
            manifest,
            base_url=base_url,
            api_uri=api_uri,
            timeout=timeout,
            retry_count=retry_count,
        )
        self._clock = clock or _utcnow
        self._duration = duration or elapsed_duration
        self._catalog = Catalog()
        self._accounts: dict[str, UserAccount] = {}
        self._reservations: dict[str, list[Reservation]] = {}
        self._taken_spots: dict[str, set[int]] = {}
        self._lot_ids = itertools.count(1)
        self._reservation_ids = itertools.count(1)
        self._user_ids = itertools.count(1)
        if seed:
            self._load_seed()

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    async def login(self, username: str, password: str) -> Session:
        """Accept any password; the ``admin`` account gets the admin role."""
        _LOGGER.debug("Backend %s login started", self.backend_id)
        username, _ = self._validate_login(username, password)
        account = self._accounts.get(username)
        if account is None:
            role = "admin" if username == ADMIN_USERNAME else "user"
            account = self._add_account(username, f"{username}@example.com", role)
        self._token = DEMO_TOKEN
        self._identity = Identity(username=account.username, role=account.role)
        _LOGGER.debug("Backend %s login completed", self.backend_id)
        return Session(token=self._token, identity=self._identity)

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str | None = None,
    ) -> None:
        username, email, _ = self._validate_registration(
            username,
            email,
            password,
            confirm_password,
        )
        if username in self._accounts:
            raise ValidationError("Username already exists.")
        self._add_account(username, email, "user")
        _LOGGER.debug("Backend %s registered %s", self.backend_id, username)

    async def get_dashboard_stats(self) -> DashboardStats:
        self._require_admin()
        return compute_dashboard_stats(
            self._catalog,
            self._all_reservations(),
            total_users=len(self._accounts),
        )

    async def list_lots(self) -> list[ParkingLot]:
        self._require_identity()
        return self._catalog.lots

    async def create_lot(self, spec: LotSpec) -> ParkingLot:
        self._require_admin()
        spec = self._with_defaults(self._validate_lot_spec(spec))
        lot = self._catalog.create(self._next_lot_id(), spec)
        self._taken_spots[lot.id] = set()
        _LOGGER.debug("Backend %s created lot %s", self.backend_id, lot.id)
        return lot

    async def update_lot(self, lot_id: str, spec: LotSpec) -> ParkingLot:
        self._require_admin()
        spec = self._with_defaults(self._validate_lot_spec(spec))
        lot = self._catalog.update(lot_id, spec)
        _LOGGER.debug("Backend %s updated lot %s", self.backend_id, lot.id)
        return lot

    async def delete_lot(self, lot_id: str) -> None:
        self._require_admin()
        lot = self._catalog.remove(lot_id)
        self._taken_spots.pop(lot.id, None)
        _LOGGER.debug("Backend %s deleted lot %s", self.backend_id, lot.id)

    async def list_users(self) -> list[UserAccount]:
        self._require_admin()
        return [
            replace(account, reservation_count=len(self._reservations.get(name, [])))
            for name, account in self._accounts.items()
        ]

    async def book(self, lot_id: str) -> Reservation:
        _LOGGER.debug("Backend %s book started", self.backend_id)
        identity = self._require_identity()
        lot = self._catalog.occupy(lot_id)
        spot_number = self._allocate_spot(lot)
        reservation = Reservation(
            id=str(next(self._reservation_ids)),
            lot_id=lot.id,
            lot_name=lot.name,
            status=STATUS_ACTIVE,
            cost=lot.price_per_hour,
            start_time=format_utc_timestamp(self._clock()),
            spot_number=spot_number,
        )
        self._reservations.setdefault(identity.username, []).insert(0, reservation)
        _LOGGER.debug("Backend %s book completed", self.backend_id)
        return reservation

    async def release(self, reservation_id: str) -> ReleaseReceipt:
        _LOGGER.debug("Backend %s release started", self.backend_id)
        identity = self._require_identity()
        reservation_id_value = self._require_id(reservation_id, "reservation_id")
        history = self._reservations.get(identity.username, [])
        index = next(
            (i for i, item in enumerate(history) if item.id == reservation_id_value),
            None,
        )
        if index is None:
            raise InvalidStateError("Reservation not found.")
        reservation = history[index]
        if reservation.status != STATUS_ACTIVE:
            raise InvalidStateError("Reservation is already completed.")

        now = self._clock()
        duration_hours = self._duration(reservation, now)
        if isinstance(duration_hours, bool) or not isinstance(duration_hours, int):
            raise ValidationError("Duration must be a whole number of hours.")
        if duration_hours < 1:
            raise ValidationError("Duration must be at least one hour.")
        cost = round_money(reservation.cost * duration_hours)

        self._catalog.vacate(reservation.lot_id)
        if reservation.spot_number is not None:
            self._taken_spots.get(reservation.lot_id, set()).discard(reservation.spot_number)
        completed = replace(
            reservation,
            status=STATUS_COMPLETED,
            cost=cost,
            end_time=format_utc_timestamp(now),
            duration_hours=duration_hours,
        )
        history[index] = completed
        _LOGGER.debug("Backend %s release completed", self.backend_id)
        return ReleaseReceipt(reservation=completed, cost=cost, duration_hours=duration_hours)

    async def list_reservations(self) -> list[Reservation]:
        identity = self._require_identity()
        return list(self._reservations.get(identity.username, []))

    async def export_csv(self) -> bytes:
        identity = self._require_identity()
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, lineterminator="\n")
        writer.writeheader()
        for reservation in self._reservations.get(identity.username, []):
            writer.writerow(
                {
                    "id": reservation.id,
                    "lot_id": reservation.lot_id,
                    "lot_name": reservation.lot_name,
                    "spot_number": reservation.spot_number or "",
                    "status": reservation.status,
                    "start_time": reservation.start_time or "",
                    "end_time": reservation.end_time or "",
                    "duration_hours": reservation.duration_hours or "",
                    "cost": f"{reservation.cost:.2f}",
                }
            )
        return buffer.getvalue().encode("utf-8")

    def _all_reservations(self) -> list[Reservation]:
        return [item for history in self._reservations.values() for item in history]

    def _add_account(self, username: str, email: str, role: str) -> UserAccount:
        account = UserAccount(
            id=str(next(self._user_ids)),
            username=username,
            email=email,
            role=role,  # type: ignore[arg-type]
        )
        self._accounts[username] = account
        return account

    def _next_lot_id(self) -> str:
        while True:
            candidate = str(next(self._lot_ids))
            if candidate not in self._catalog:
                return candidate

    def _allocate_spot(self, lot: ParkingLot) -> int:
        taken = self._taken_spots.setdefault(lot.id, set())
        spot_number = next(
            number for number in range(1, lot.total_spots + 1) if number not in taken
        )
        taken.add(spot_number)
        return spot_number

    def _with_defaults(self, spec: LotSpec) -> LotSpec:
        return replace(
            spec,
            address=spec.address or DEFAULT_ADDRESS,
            pincode=spec.pincode or DEFAULT_PINCODE,
        )

    def _load_seed(self) -> None:
        for user in SEED_USERS:
            self._add_account(user["username"], user["email"], user["role"])
        for data in SEED_LOTS:
            lot = self._catalog.add(
                ParkingLot(**{**data, "price_per_hour": float(data["price_per_hour"])})
            )
            self._taken_spots[lot.id] = set(range(1, lot.occupied_spots + 1))
        now = self._clock()
        history: list[Reservation] = []
        for data in SEED_RESERVATIONS:
            lot = self._catalog.get(data["lot_id"])
            start = now - timedelta(hours=data["started_hours_ago"])
            hours = data["hours"]
            if data["status"] == STATUS_ACTIVE:
                reservation = Reservation(
                    id=data["id"],
                    lot_id=lot.id,
                    lot_name=lot.name,
                    status=STATUS_ACTIVE,
                    cost=lot.price_per_hour,
                    start_time=format_utc_timestamp(start),
                    spot_number=1,
                )
            else:
                reservation = Reservation(
                    id=data["id"],
                    lot_id=lot.id,
                    lot_name=lot.name,
                    status=STATUS_COMPLETED,
                    cost=round_money(lot.price_per_hour * hours),
                    start_time=format_utc_timestamp(start),
                    end_time=format_utc_timestamp(start + timedelta(hours=hours)),
                    duration_hours=hours,
                )
            history.append(reservation)
        self._reservations[DEMO_USERNAME] = history
        self._lot_ids = itertools.count(len(SEED_LOTS) + 1)
        self._reservation_ids = itertools.count(
            max(int(data["id"]) for data in SEED_RESERVATIONS) + 1
        )
