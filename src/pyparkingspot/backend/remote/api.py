"""Remote backend for the parking REST API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import aiohttp

from ...exceptions import AuthError, BackendError, InvalidStateError, ValidationError
from ...models import (
    ROLES,
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
from ...util import ensure_utc_timestamp, format_utc_timestamp, round_money
from ..base import BaseBackend
from ..loader import BackendManifest
from .const import (
    ADMIN_DASHBOARD_ENDPOINT,
    ADMIN_LOT_ENDPOINT,
    ADMIN_LOTS_ENDPOINT,
    ADMIN_USERS_ENDPOINT,
    BOOK_ENDPOINT,
    DEFAULT_BASE_URL,
    EXPORT_CSV_ENDPOINT,
    LOGIN_ENDPOINT,
    MY_RESERVATIONS_ENDPOINT,
    REGISTER_ENDPOINT,
    RELEASE_ENDPOINT,
    SPOT_KEY_ALIASES,
    USER_LOTS_ENDPOINT,
)

_LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Backend(BaseBackend):
    """Backend that forwards every operation to the parking REST API."""

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
    ) -> None:
        """Initialize the backend."""
        if base_url is None:
            base_url = DEFAULT_BASE_URL
        super().__init__(
            session,
            manifest,
            base_url=base_url,
            api_uri=api_uri,
            timeout=timeout,
            retry_count=retry_count,
        )
        self._clock = clock or _utcnow

    async def login(self, username: str, password: str) -> Session:
        _LOGGER.debug("Backend %s login started", self.backend_id)
        username, password = self._validate_login(username, password)
        data = await self._request_json(
            "POST",
            LOGIN_ENDPOINT,
            json={"username": username, "password": password},
        )
        if not isinstance(data, dict):
            raise BackendError("Backend response included invalid login data.")
        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            raise AuthError("Authentication failed.")
        identity = self._map_identity(data.get("user"), fallback_username=username)
        self._token = token
        self._identity = identity
        _LOGGER.debug("Backend %s login completed", self.backend_id)
        return Session(token=token, identity=identity)

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str | None = None,
    ) -> None:
        username, email, password = self._validate_registration(
            username,
            email,
            password,
            confirm_password,
        )
        await self._request_text(
            "POST",
            REGISTER_ENDPOINT,
            json={"username": username, "email": email, "password": password},
        )

    async def get_dashboard_stats(self) -> DashboardStats:
        self._require_admin()
        data = await self._request_json("GET", ADMIN_DASHBOARD_ENDPOINT)
        return self._map_dashboard_stats(data)

    async def list_lots(self) -> list[ParkingLot]:
        identity = self._require_identity()
        endpoint = ADMIN_LOTS_ENDPOINT if identity.is_admin else USER_LOTS_ENDPOINT
        data = await self._request_json("GET", endpoint)
        return self._map_lot_list(self._unwrap(data, "parking_lots"))

    async def create_lot(self, spec: LotSpec) -> ParkingLot:
        _LOGGER.debug("Backend %s create_lot started", self.backend_id)
        self._require_admin()
        spec = self._validate_lot_spec(spec)
        data = await self._request_json("POST", ADMIN_LOTS_ENDPOINT, json=self._lot_payload(spec))
        lot = await self._lot_from_write_response(data)
        _LOGGER.debug("Backend %s create_lot completed", self.backend_id)
        return lot

    async def update_lot(self, lot_id: str, spec: LotSpec) -> ParkingLot:
        _LOGGER.debug("Backend %s update_lot started", self.backend_id)
        self._require_admin()
        lot_id_value = self._require_id(lot_id, "lot_id")
        spec = self._validate_lot_spec(spec)
        data = await self._request_json(
            "PUT",
            ADMIN_LOT_ENDPOINT.format(lot_id=lot_id_value),
            json={"id": lot_id_value, **self._lot_payload(spec)},
        )
        lot = await self._lot_from_write_response(data, lot_id=lot_id_value)
        _LOGGER.debug("Backend %s update_lot completed", self.backend_id)
        return lot

    async def delete_lot(self, lot_id: str) -> None:
        self._require_admin()
        lot_id_value = self._require_id(lot_id, "lot_id")
        await self._request_text("DELETE", ADMIN_LOT_ENDPOINT.format(lot_id=lot_id_value))

    async def list_users(self) -> list[UserAccount]:
        self._require_admin()
        data = await self._request_json("GET", ADMIN_USERS_ENDPOINT)
        raw = self._unwrap(data, "users")
        if not isinstance(raw, list):
            raise BackendError("Backend response included invalid users.")
        return [self._map_user(item) for item in raw if isinstance(item, dict)]

    async def book(self, lot_id: str) -> Reservation:
        _LOGGER.debug("Backend %s book started", self.backend_id)
        self._require_identity()
        lot_id_value = self._require_id(lot_id, "lot_id")
        data = await self._request_json("POST", BOOK_ENDPOINT, json={"lot_id": lot_id_value})
        reservation = self._map_reservation(
            self._unwrap(data, "reservation"),
            default_lot_id=lot_id_value,
        )
        _LOGGER.debug("Backend %s book completed", self.backend_id)
        return reservation

    async def release(self, reservation_id: str) -> ReleaseReceipt:
        _LOGGER.debug("Backend %s release started", self.backend_id)
        self._require_identity()
        reservation_id_value = self._require_id(reservation_id, "reservation_id")
        existing = self._find_reservation(await self.list_reservations(), reservation_id_value)
        if existing is None:
            raise InvalidStateError("Reservation not found.")
        if existing.status != STATUS_ACTIVE:
            raise InvalidStateError("Reservation is already completed.")
        data = await self._request_json(
            "PUT",
            RELEASE_ENDPOINT.format(reservation_id=reservation_id_value),
        )
        receipt = self._map_release(data, existing)
        _LOGGER.debug("Backend %s release completed", self.backend_id)
        return receipt

    async def list_reservations(self) -> list[Reservation]:
        self._require_identity()
        data = await self._request_json("GET", MY_RESERVATIONS_ENDPOINT)
        raw = self._unwrap(data, "reservations")
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise BackendError("Backend response included invalid reservations.")
        return [self._map_reservation(item) for item in raw if isinstance(item, dict)]

    async def export_csv(self) -> bytes:
        self._require_identity()
        return await self._request_bytes(
            "GET",
            EXPORT_CSV_ENDPOINT,
            headers={"Accept": "text/csv"},
        )

    async def _lot_from_write_response(self, data: Any, *, lot_id: str | None = None) -> ParkingLot:
        payload = self._unwrap(data, "parking_lot")
        if isinstance(payload, dict) and "name" in payload:
            return self._map_lot(payload)
        # Some servers only answer with a message and the id.
        if isinstance(data, dict) and lot_id is None:
            raw_id = data.get("lot_id") or data.get("id")
            lot_id = str(raw_id) if raw_id is not None else None
        if lot_id is None:
            raise BackendError("Backend response did not identify the parking lot.")
        for lot in await self.list_lots():
            if lot.id == lot_id:
                return lot
        raise BackendError("Parking lot was not returned by the backend.")

    def _lot_payload(self, spec: LotSpec) -> dict[str, Any]:
        return {
            "name": spec.name,
            "address": spec.address,
            "pincode": spec.pincode,
            "price_per_hour": spec.price_per_hour,
            "total_spots": spec.total_spots,
        }

    def _unwrap(self, data: Any, key: str) -> Any:
        if isinstance(data, dict) and key in data:
            return data[key]
        return data

    def _map_identity(self, data: Any, *, fallback_username: str) -> Identity:
        if not isinstance(data, dict):
            raise BackendError("Backend response included invalid user data.")
        username = data.get("username") or fallback_username
        role = self._map_role(data)
        return Identity(username=str(username), role=role)  # type: ignore[arg-type]

    def _map_role(self, data: dict[str, Any]) -> str:
        role = data.get("role")
        if isinstance(role, str) and role.lower() in ROLES:
            return role.lower()
        if role is None:
            return "admin" if data.get("is_admin") is True else "user"
        raise BackendError("Backend response included an unknown role.")

    def _map_dashboard_stats(self, data: Any) -> DashboardStats:
        if not isinstance(data, dict):
            raise BackendError("Backend response included invalid dashboard data.")
        return DashboardStats(
            total_lots=self._parse_int(data.get("total_lots")),
            total_spots=self._parse_int(data.get("total_spots")),
            available_spots=self._parse_int(data.get("available_spots")),
            occupied_spots=self._parse_int(data.get("occupied_spots")),
            active_reservations=self._parse_int(data.get("active_reservations")),
            total_users=self._parse_int(data.get("total_users")),
        )

    def _map_lot_list(self, data: Any) -> list[ParkingLot]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise BackendError("Backend response included invalid parking lots.")
        return [self._map_lot(item) for item in data if isinstance(item, dict)]

    def _map_lot(self, data: Any) -> ParkingLot:
        if not isinstance(data, dict):
            raise BackendError("Backend response included invalid parking lot data.")
        lot_id = self._coerce_response_id(data.get("id"), "parking lot id")
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise BackendError("Backend response missing parking lot name.")
        total = self._spot_count(data, "total_spots")
        available = self._spot_count(data, "available_spots")
        occupied = self._spot_count(data, "occupied_spots")
        if total is None:
            raise BackendError("Backend response missing parking lot capacity.")
        if available is None and occupied is None:
            available, occupied = total, 0
        elif occupied is None:
            occupied = total - available
        elif available is None:
            available = total - occupied
        try:
            return ParkingLot(
                id=lot_id,
                name=name,
                address=str(data.get("address") or ""),
                pincode=str(data.get("pincode") or ""),
                price_per_hour=round_money(self._parse_float(data.get("price_per_hour"))),
                total_spots=total,
                available_spots=available,
                occupied_spots=occupied,
            )
        except ValidationError as exc:
            raise BackendError("Backend returned inconsistent parking lot counters.") from exc

    def _spot_count(self, data: dict[str, Any], field: str) -> int | None:
        for key in SPOT_KEY_ALIASES[field]:
            if data.get(key) is not None:
                return self._parse_int(data[key])
        return None

    def _map_user(self, data: dict[str, Any]) -> UserAccount:
        return UserAccount(
            id=self._coerce_response_id(data.get("id"), "user id"),
            username=str(data.get("username") or ""),
            email=str(data.get("email") or ""),
            role=self._map_role(data),  # type: ignore[arg-type]
            reservation_count=self._parse_int(
                data.get("reservation_count", data.get("total_reservations"))
            ),
        )

    def _map_reservation(self, data: Any, *, default_lot_id: str | None = None) -> Reservation:
        if not isinstance(data, dict):
            raise BackendError("Backend response included invalid reservation data.")
        reservation_id = self._coerce_response_id(data.get("id"), "reservation id")
        lot = data.get("lot") if isinstance(data.get("lot"), dict) else {}
        raw_lot_id = data.get("lot_id", data.get("parking_lot_id", lot.get("id", default_lot_id)))
        lot_id = self._coerce_response_id(raw_lot_id, "reservation lot id")
        lot_name = data.get("lot_name") or lot.get("name") or ""
        status = str(data.get("status") or STATUS_ACTIVE).lower()
        if status not in (STATUS_ACTIVE, STATUS_COMPLETED):
            raise BackendError("Backend response included an unknown reservation status.")
        spot_number = data.get("spot_number")
        duration = data.get("duration_hours")
        return Reservation(
            id=reservation_id,
            lot_id=lot_id,
            lot_name=str(lot_name),
            status=status,  # type: ignore[arg-type]
            cost=round_money(self._parse_float(data.get("cost", data.get("parking_cost")))),
            start_time=self._normalize_timestamp(
                data.get("start_time", data.get("parking_timestamp"))
            ),
            end_time=self._normalize_timestamp(
                data.get("end_time", data.get("leaving_timestamp"))
            ),
            spot_number=self._parse_int(spot_number) if spot_number is not None else None,
            duration_hours=self._parse_int(duration) if duration is not None else None,
        )

    def _map_release(self, data: Any, existing: Reservation) -> ReleaseReceipt:
        if not isinstance(data, dict):
            raise BackendError("Backend response included invalid release data.")
        if "parking_cost" not in data or "duration_hours" not in data:
            raise BackendError("Backend response missing release fields.")
        cost = round_money(self._parse_float(data.get("parking_cost")))
        duration_hours = self._parse_int(data.get("duration_hours"))
        if isinstance(data.get("reservation"), dict):
            completed = self._map_reservation(
                data["reservation"],
                default_lot_id=existing.lot_id,
            )
        else:
            completed = existing
        completed = replace(
            completed,
            status=STATUS_COMPLETED,
            cost=cost,
            duration_hours=duration_hours,
            end_time=completed.end_time or format_utc_timestamp(self._clock()),
        )
        return ReleaseReceipt(reservation=completed, cost=cost, duration_hours=duration_hours)

    def _normalize_timestamp(self, value: Any) -> str | None:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise BackendError("Backend response included an invalid timestamp.")
        try:
            return ensure_utc_timestamp(value)
        except ValidationError:
            pass
        # Naive server timestamps are UTC.
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise BackendError("Backend response included an invalid timestamp.") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return format_utc_timestamp(parsed)

    def _find_reservation(
        self,
        reservations: list[Reservation],
        reservation_id: str,
    ) -> Reservation | None:
        for reservation in reservations:
            if reservation.id == reservation_id:
                return reservation
        return None

    def _coerce_response_id(self, value: Any, field: str) -> str:
        if value is None:
            raise BackendError(f"Backend response missing {field}.")
        text = str(value).strip()
        if not text:
            raise BackendError(f"Backend response missing {field}.")
        return text

    def _parse_int(self, value: Any) -> int:
        if value is None or isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return 0
            try:
                return int(float(stripped))
            except ValueError:
                return 0
        return 0

    def _parse_float(self, value: Any) -> float:
        if value is None or isinstance(value, bool):
            return 0.0
        if isinstance(value, int | float):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return 0.0
        return 0.0
