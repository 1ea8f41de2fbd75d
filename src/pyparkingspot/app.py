"""Application controller tying the session store, backend and view state together."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, TypeVar

from .backend.base import BaseBackend
from .catalog import Catalog
from .exceptions import AuthError, InvalidStateError, PyParkingSpotError, ValidationError
from .models import (
    DashboardStats,
    Identity,
    LotSpec,
    ParkingLot,
    ReleaseReceipt,
    Reservation,
    Session,
    UserAccount,
    UserStats,
)
from .session import SessionStore
from .stats import (
    active_reservations,
    completed_reservations,
    compute_dashboard_stats,
    compute_user_stats,
)
from .util import export_filename, format_duration, format_elapsed

_LOGGER = logging.getLogger(__name__)
_T = TypeVar("_T")


@dataclass(frozen=True, slots=True)
class Notice:
    level: Literal["success", "error"]
    message: str


@dataclass(frozen=True, slots=True)
class _Dashboard:
    lots: list[ParkingLot]
    stats: DashboardStats | None = None
    reservations: list[Reservation] | None = None


class ParkingApp:
    """State holder for one signed-in user.

    Every action returns ``True`` on success. Library errors never escape:
    they are turned into an error ``notice`` and the view state is left
    exactly as it was before the action.
    """

    def __init__(
        self,
        backend: BaseBackend,
        store: SessionStore | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.backend = backend
        self.store = store or SessionStore()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.session: Session | None = None
        self.lots = Catalog()
        self.reservations: list[Reservation] = []
        self.users: list[UserAccount] = []
        self.stats: DashboardStats | None = None
        self.user_stats: UserStats = compute_user_stats([])
        self.notice: Notice | None = None
        self.last_receipt: ReleaseReceipt | None = None
        self.last_export: Path | None = None

    @property
    def is_admin(self) -> bool:
        return self.session is not None and self.session.identity.is_admin

    @property
    def active_reservations(self) -> list[Reservation]:
        return active_reservations(self.reservations)

    @property
    def completed_reservations(self) -> list[Reservation]:
        return completed_reservations(self.reservations)

    def clear_notice(self) -> None:
        self.notice = None

    def search_lots(self, query: str | None) -> list[ParkingLot]:
        return self.lots.search(query)

    def reservation_duration(self, reservation: Reservation) -> str:
        """Elapsed time for an active stay, billed length for a finished one."""
        if reservation.is_active:
            return format_elapsed(reservation.start_time, self._clock())
        return format_duration(reservation.start_time, reservation.end_time)

    async def restore(self) -> bool:
        """Pick up a session saved by an earlier run and load its dashboard.

        A stored session the backend rejects is removed from the store.
        """
        session = self.store.load()
        if session is None:
            return False

        async def _restore() -> _Dashboard:
            self.backend.restore(session)
            try:
                return await self._fetch_dashboard(session.identity)
            except AuthError:
                await self._reset_backend()
                self.store.clear()
                raise
            except PyParkingSpotError:
                await self._reset_backend()
                raise

        dashboard = await self._run(_restore)
        if dashboard is None:
            return False
        self.session = session
        self._apply_dashboard(dashboard)
        return True

    async def login(self, username: str, password: str) -> bool:
        """Sign in, load the dashboard and persist the session, or change nothing."""

        async def _login() -> tuple[Session, _Dashboard]:
            session = await self.backend.login(username, password)
            try:
                dashboard = await self._fetch_dashboard(session.identity)
                self.store.save(session.token, session.identity)
            except (PyParkingSpotError, OSError):
                await self._reset_backend()
                raise
            return session, dashboard

        loaded = await self._run(_login)
        if loaded is None:
            return False
        self.session, dashboard = loaded
        self._apply_dashboard(dashboard)
        self._success("Login successful!")
        return True

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str,
    ) -> bool:
        done = await self._run(
            lambda: self.backend.register(username, email, password, confirm_password),
            result=True,
        )
        if done:
            self._success("Registration successful! Please login.")
        return bool(done)

    async def logout(self) -> bool:
        async def _logout() -> None:
            self.store.clear()
            await self.backend.logout()

        if not await self._run(_logout, result=True):
            return False
        self.session = None
        self.lots = Catalog()
        self.reservations = []
        self.users = []
        self.stats = None
        self.user_stats = compute_user_stats([])
        self.last_receipt = None
        self._success("Logged out successfully")
        return True

    async def load_dashboard(self) -> bool:
        if self.is_admin:
            return await self.load_admin_dashboard()
        return await self.load_user_dashboard()

    async def load_admin_dashboard(self) -> bool:
        dashboard = await self._run(self._fetch_admin_dashboard)
        if dashboard is None:
            return False
        self._apply_dashboard(dashboard)
        return True

    async def load_user_dashboard(self) -> bool:
        dashboard = await self._run(self._fetch_user_dashboard)
        if dashboard is None:
            return False
        self._apply_dashboard(dashboard)
        return True

    async def load_users(self) -> bool:
        users = await self._run(self.backend.list_users)
        if users is None:
            return False
        self.users = users
        return True

    async def create_lot(self, spec: LotSpec) -> bool:
        lot = await self._run(lambda: self.backend.create_lot(spec))
        if lot is None:
            return False
        self.lots.put(lot)
        self._recompute_admin_stats()
        self._success("Parking lot created successfully!")
        return True

    async def update_lot(self, lot_id: str, spec: LotSpec) -> bool:
        lot = await self._run(lambda: self.backend.update_lot(lot_id, spec))
        if lot is None:
            return False
        self.lots.put(lot)
        self._recompute_admin_stats()
        self._success("Parking lot updated successfully!")
        return True

    async def delete_lot(self, lot_id: str) -> bool:
        async def _delete() -> None:
            view_lot = self._view_lot(lot_id)
            if view_lot is not None and view_lot.occupied_spots > 0:
                raise InvalidStateError("Cannot delete a parking lot with occupied spots.")
            await self.backend.delete_lot(lot_id)

        done = await self._run(_delete, result=True)
        if not done:
            return False
        self.lots.discard(lot_id)
        self._recompute_admin_stats()
        self._success("Parking lot deleted successfully!")
        return True

    async def book(self, lot_id: str) -> bool:
        reservation = await self._run(lambda: self.backend.book(lot_id))
        if reservation is None:
            return False
        view_lot = self._view_lot(reservation.lot_id)
        if view_lot is not None and view_lot.available_spots > 0:
            self.lots.occupy(reservation.lot_id)
        self.reservations.insert(0, reservation)
        self.user_stats = compute_user_stats(self.reservations)
        if reservation.spot_number is not None:
            self._success(f"Parking spot {reservation.spot_number} booked successfully!")
        else:
            self._success("Parking spot booked successfully!")
        return True

    async def release(self, reservation_id: str) -> bool:
        receipt = await self._run(lambda: self.backend.release(reservation_id))
        if receipt is None:
            return False
        completed = receipt.reservation
        self.reservations = [
            completed if item.id == completed.id else item for item in self.reservations
        ]
        view_lot = self._view_lot(completed.lot_id)
        if view_lot is not None and view_lot.occupied_spots > 0:
            self.lots.vacate(completed.lot_id)
        self.user_stats = compute_user_stats(self.reservations)
        self.last_receipt = receipt
        self._success(
            f"Spot released! Cost: ₹{receipt.cost:.2f} for {receipt.duration_hours} hours"
        )
        return True

    async def export_csv(self, directory: str | Path = ".") -> bool:
        """Write the reservation history to ``parking_history_<date>.csv``."""

        async def _export() -> Path:
            if not self.reservations:
                raise ValidationError("No reservations to export")
            content = await self.backend.export_csv()
            target = Path(directory) / export_filename(self._clock().date())
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            return target

        target = await self._run(_export)
        if target is None:
            return False
        self.last_export = target
        self._success("CSV exported successfully!")
        return True

    async def _fetch_dashboard(self, identity: Identity) -> _Dashboard:
        if identity.is_admin:
            return await self._fetch_admin_dashboard()
        return await self._fetch_user_dashboard()

    async def _fetch_admin_dashboard(self) -> _Dashboard:
        stats = await self.backend.get_dashboard_stats()
        return _Dashboard(lots=await self.backend.list_lots(), stats=stats)

    async def _fetch_user_dashboard(self) -> _Dashboard:
        lots = await self.backend.list_lots()
        return _Dashboard(lots=lots, reservations=await self.backend.list_reservations())

    def _apply_dashboard(self, dashboard: _Dashboard) -> None:
        self.lots = Catalog(dashboard.lots)
        self.stats = dashboard.stats
        self.reservations = list(dashboard.reservations or [])
        self.user_stats = compute_user_stats(self.reservations)

    async def _reset_backend(self) -> None:
        """Point the backend back at the session the view is showing."""
        if self.session is not None:
            self.backend.restore(self.session)
        else:
            await self.backend.logout()

    def _view_lot(self, lot_id: str) -> ParkingLot | None:
        return self.lots.get(lot_id) if lot_id in self.lots else None

    def _recompute_admin_stats(self) -> None:
        if self.stats is None:
            return
        totals = compute_dashboard_stats(self.lots, total_users=self.stats.total_users)
        self.stats = replace(
            totals,
            active_reservations=self.stats.active_reservations,
        )

    def _success(self, message: str) -> None:
        self.notice = Notice("success", message)

    async def _run(
        self,
        action: Callable[[], Awaitable[_T]],
        *,
        result: _T | None = None,
    ) -> _T | None:
        try:
            value = await action()
        except OSError as exc:
            _LOGGER.debug("Action failed with OS error: %s", exc)
            self.notice = Notice("error", str(exc))
            return None
        except PyParkingSpotError as exc:
            _LOGGER.debug("Action failed: %s", exc)
            self.notice = Notice("error", exc.user_message or str(exc))
            return None
        return result if result is not None else value
