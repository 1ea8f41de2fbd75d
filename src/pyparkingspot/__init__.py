"""pyParkingSpot package."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from .app import Notice, ParkingApp
from .catalog import Catalog
from .client import Client
from .exceptions import (
    AuthError,
    BackendError,
    CapacityExhaustedError,
    ConfigError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    PyParkingSpotError,
    RemoteError,
    ValidationError,
)
from .models import (
    BackendInfo,
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
from .stats import compute_dashboard_stats, compute_user_stats

try:
    __version__ = version("pyparkingspot")
except PackageNotFoundError:  # pragma: no cover - not installed
    __version__ = "0.0.0"

__all__ = [
    "AuthError",
    "BackendError",
    "BackendInfo",
    "CapacityExhaustedError",
    "Catalog",
    "Client",
    "ConfigError",
    "DashboardStats",
    "Identity",
    "InvalidStateError",
    "LotSpec",
    "NetworkError",
    "NotFoundError",
    "Notice",
    "ParkingApp",
    "ParkingLot",
    "PyParkingSpotError",
    "ReleaseReceipt",
    "RemoteError",
    "Reservation",
    "Session",
    "SessionStore",
    "UserAccount",
    "UserStats",
    "ValidationError",
    "__version__",
    "compute_dashboard_stats",
    "compute_user_stats",
]
