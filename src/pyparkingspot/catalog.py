"""Parking lot collection with capacity counters."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import replace

from .exceptions import CapacityExhaustedError, InvalidStateError, NotFoundError, ValidationError
from .models import LotSpec, ParkingLot
from .util import filter_lots, require_id, validate_lot_spec


class Catalog:
    """Ordered collection of parking lots.

    Lots are immutable; every counter change swaps in a new ``ParkingLot``
    so ``available_spots + occupied_spots == total_spots`` is checked on
    each mutation and a failed mutation leaves the previous lot in place.
    """

    def __init__(self, lots: Iterable[ParkingLot] = ()) -> None:
        self._lots: dict[str, ParkingLot] = {}
        for lot in lots:
            self.add(lot)

    def __iter__(self) -> Iterator[ParkingLot]:
        return iter(list(self._lots.values()))

    def __len__(self) -> int:
        return len(self._lots)

    def __contains__(self, lot_id: object) -> bool:
        if lot_id is None or isinstance(lot_id, bool):
            return False
        return str(lot_id).strip() in self._lots

    @property
    def lots(self) -> list[ParkingLot]:
        return list(self._lots.values())

    def get(self, lot_id: str) -> ParkingLot:
        lot_id_value = require_id(lot_id, "lot_id")
        lot = self._lots.get(lot_id_value)
        if lot is None:
            raise NotFoundError("Parking lot not found.")
        return lot

    def add(self, lot: ParkingLot) -> ParkingLot:
        if not isinstance(lot, ParkingLot):
            raise ValidationError("Only ParkingLot instances can be added.")
        if lot.id in self._lots:
            raise ValidationError(f"Parking lot {lot.id} already exists.")
        self._lots[lot.id] = lot
        return lot

    def put(self, lot: ParkingLot) -> ParkingLot:
        """Insert a lot or overwrite the one with the same id."""
        if not isinstance(lot, ParkingLot):
            raise ValidationError("Only ParkingLot instances can be added.")
        self._lots[lot.id] = lot
        return lot

    def discard(self, lot_id: str) -> None:
        if lot_id in self:
            del self._lots[str(lot_id).strip()]

    def create(self, lot_id: str, spec: LotSpec) -> ParkingLot:
        spec = validate_lot_spec(spec)
        lot = ParkingLot(
            id=require_id(lot_id, "lot_id"),
            name=spec.name,
            address=spec.address,
            pincode=spec.pincode,
            price_per_hour=spec.price_per_hour,
            total_spots=spec.total_spots,
            available_spots=spec.total_spots,
            occupied_spots=0,
        )
        return self.add(lot)

    def update(self, lot_id: str, spec: LotSpec) -> ParkingLot:
        """Replace the editable fields, keeping current occupancy."""
        lot = self.get(lot_id)
        spec = validate_lot_spec(spec)
        if spec.total_spots < lot.occupied_spots:
            raise InvalidStateError(
                f"Total spots cannot be lower than the {lot.occupied_spots} occupied spots."
            )
        updated = replace(
            lot,
            name=spec.name,
            address=spec.address,
            pincode=spec.pincode,
            price_per_hour=spec.price_per_hour,
            total_spots=spec.total_spots,
            available_spots=spec.total_spots - lot.occupied_spots,
        )
        self._lots[lot.id] = updated
        return updated

    def remove(self, lot_id: str) -> ParkingLot:
        lot = self.get(lot_id)
        if lot.occupied_spots > 0:
            raise InvalidStateError("Cannot delete a parking lot with occupied spots.")
        del self._lots[lot.id]
        return lot

    def occupy(self, lot_id: str) -> ParkingLot:
        lot = self.get(lot_id)
        if lot.available_spots <= 0:
            raise CapacityExhaustedError("No slots available in this parking lot.")
        updated = replace(
            lot,
            available_spots=lot.available_spots - 1,
            occupied_spots=lot.occupied_spots + 1,
        )
        self._lots[lot.id] = updated
        return updated

    def vacate(self, lot_id: str) -> ParkingLot:
        lot = self.get(lot_id)
        if lot.occupied_spots <= 0:
            raise InvalidStateError("Parking lot has no occupied spots to release.")
        updated = replace(
            lot,
            available_spots=lot.available_spots + 1,
            occupied_spots=lot.occupied_spots - 1,
        )
        self._lots[lot.id] = updated
        return updated

    def search(self, query: str | None) -> list[ParkingLot]:
        return filter_lots(self._lots.values(), query)
