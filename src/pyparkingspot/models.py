"""Public data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .exceptions import ValidationError

Role = Literal["admin", "user"]
ReservationStatus = Literal["active", "completed"]

ROLES: tuple[str, ...] = ("admin", "user")
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class BackendInfo:
    id: str
    name: str
    remote: bool


@dataclass(frozen=True, slots=True)
class Identity:
    username: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True, slots=True)
class Session:
    token: str
    identity: Identity


@dataclass(frozen=True, slots=True)
class LotSpec:
    name: str
    price_per_hour: float
    total_spots: int
    address: str = ""
    pincode: str = ""


@dataclass(frozen=True, slots=True)
class ParkingLot:
    id: str
    name: str
    address: str
    pincode: str
    price_per_hour: float
    total_spots: int
    available_spots: int
    occupied_spots: int

    def __post_init__(self) -> None:
        if self.available_spots < 0 or self.occupied_spots < 0:
            raise ValidationError("Spot counters cannot be negative.")
        if self.available_spots + self.occupied_spots != self.total_spots:
            raise ValidationError("available_spots + occupied_spots must equal total_spots.")


@dataclass(frozen=True, slots=True)
class Reservation:
    id: str
    lot_id: str
    lot_name: str
    status: ReservationStatus
    cost: float
    start_time: str | None = None
    end_time: str | None = None
    spot_number: int | None = None
    duration_hours: int | None = None

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE


@dataclass(frozen=True, slots=True)
class ReleaseReceipt:
    reservation: Reservation
    cost: float
    duration_hours: int


@dataclass(frozen=True, slots=True)
class UserAccount:
    id: str
    username: str
    email: str
    role: Role
    reservation_count: int = 0


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_lots: int
    total_spots: int
    available_spots: int
    occupied_spots: int
    active_reservations: int
    total_users: int


@dataclass(frozen=True, slots=True)
class UserStats:
    active_count: int
    completed_count: int
    total_spent: float
    spending_by_lot: dict[str, float] = field(default_factory=dict)
