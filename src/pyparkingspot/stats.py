"""Dashboard statistics derived from lots and reservations."""

from __future__ import annotations

from collections.abc import Iterable

from .models import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    DashboardStats,
    ParkingLot,
    Reservation,
    UserStats,
)
from .util import round_money


def compute_dashboard_stats(
    lots: Iterable[ParkingLot],
    reservations: Iterable[Reservation] = (),
    total_users: int = 0,
) -> DashboardStats:
    lot_list = list(lots)
    return DashboardStats(
        total_lots=len(lot_list),
        total_spots=sum(lot.total_spots for lot in lot_list),
        available_spots=sum(lot.available_spots for lot in lot_list),
        occupied_spots=sum(lot.occupied_spots for lot in lot_list),
        active_reservations=sum(1 for item in reservations if item.status == STATUS_ACTIVE),
        total_users=max(0, total_users),
    )


def compute_user_stats(reservations: Iterable[Reservation]) -> UserStats:
    active = 0
    completed = 0
    spending: dict[str, float] = {}
    for reservation in reservations:
        if reservation.status == STATUS_ACTIVE:
            active += 1
            continue
        if reservation.status != STATUS_COMPLETED:
            continue
        completed += 1
        spending[reservation.lot_name] = spending.get(reservation.lot_name, 0.0) + reservation.cost
    spending = {name: round_money(total) for name, total in spending.items()}
    return UserStats(
        active_count=active,
        completed_count=completed,
        total_spent=round_money(sum(spending.values())),
        spending_by_lot=spending,
    )


def active_reservations(reservations: Iterable[Reservation]) -> list[Reservation]:
    return [item for item in reservations if item.status == STATUS_ACTIVE]


def completed_reservations(reservations: Iterable[Reservation]) -> list[Reservation]:
    return [item for item in reservations if item.status == STATUS_COMPLETED]
