"""Backend base class and shared behavior."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from ..exceptions import (
    AuthError,
    BackendError,
    ConfigError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    RemoteError,
    ValidationError,
)
from ..models import (
    BackendInfo,
    DashboardStats,
    Identity,
    LotSpec,
    ParkingLot,
    ReleaseReceipt,
    Reservation,
    Session,
    UserAccount,
)
from ..util import (
    normalize_email,
    normalize_username,
    require_id,
    validate_lot_spec,
    validate_password,
)
from .loader import BackendManifest

_LOGGER = logging.getLogger(__name__)
_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


class BaseBackend(ABC):
    """Base class for backend implementations."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None,
        manifest: BackendManifest,
        *,
        base_url: str | None = None,
        api_uri: str | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        retry_count: int = 0,
    ) -> None:
        if session is None and manifest.remote:
            raise ValidationError("Session is required.")
        self._session = session
        self._manifest = manifest
        self._base_url = self._normalize_base_url(base_url)
        self._api_uri = self._normalize_api_uri(api_uri)
        self._timeout = timeout or _DEFAULT_TIMEOUT
        self._retry_count = max(0, retry_count)
        self._token: str | None = None
        self._identity: Identity | None = None

    @property
    def backend_id(self) -> str:
        return self._manifest.id

    @property
    def backend_name(self) -> str:
        return self._manifest.name

    @property
    def info(self) -> BackendInfo:
        return BackendInfo(
            id=self._manifest.id,
            name=self._manifest.name,
            remote=self._manifest.remote,
        )

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def token(self) -> str | None:
        return self._token

    def restore(self, session: Session) -> None:
        """Adopt a session persisted by an earlier login."""
        if not isinstance(session, Session):
            raise ValidationError("A stored session is required.")
        self._token = session.token
        self._identity = session.identity
        _LOGGER.debug(
            "Backend %s restored session for %s",
            self.backend_id,
            session.identity.username,
        )

    async def logout(self) -> None:
        self._token = None
        self._identity = None

    def _require_identity(self) -> Identity:
        if self._identity is None or self._token is None:
            raise AuthError("Please login first.")
        return self._identity

    def _require_admin(self) -> Identity:
        identity = self._require_identity()
        if not identity.is_admin:
            raise AuthError("Admin access required.")
        return identity

    def _validate_login(self, username: str, password: str) -> tuple[str, str]:
        if not username or not password:
            raise ValidationError("Please enter username and password.")
        if not isinstance(password, str):
            raise ValidationError("Password must be a string.")
        return normalize_username(username), password

    def _validate_registration(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str | None,
    ) -> tuple[str, str, str]:
        if not username or not email or not password:
            raise ValidationError("Please fill all fields.")
        return (
            normalize_username(username),
            normalize_email(email),
            validate_password(password, confirm_password),
        )

    def _validate_lot_spec(self, spec: LotSpec) -> LotSpec:
        return validate_lot_spec(spec)

    def _require_id(self, value: Any, field: str) -> str:
        return require_id(value, field)

    def _build_url(self, path: str) -> str:
        if not isinstance(path, str) or not path:
            raise ValidationError("Path must be a non-empty string.")
        if path.startswith("http://") or path.startswith("https://"):
            raise ValidationError("Use relative paths when building backend requests.")
        if self._base_url is None:
            raise ConfigError("base_url is required to build backend requests.")
        normalized_path = path if path.startswith("/") else f"/{path}"
        return f"{self._base_url}{self._api_uri}{normalized_path}"

    def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        url = self._build_url(path)
        return await self._request(method, url, expect="json", **kwargs)

    async def _request_text(self, method: str, path: str, **kwargs: Any) -> str:
        url = self._build_url(path)
        return await self._request(method, url, expect="text", **kwargs)

    async def _request_bytes(self, method: str, path: str, **kwargs: Any) -> bytes:
        url = self._build_url(path)
        return await self._request(method, url, expect="bytes", **kwargs)

    async def _request(self, method: str, url: str, *, expect: str, **kwargs: Any) -> Any:
        if self._session is None:
            raise ConfigError("Backend has no HTTP session.")
        retries = self._retry_count if method.upper() == "GET" else 0
        attempts = retries + 1
        last_error: Exception | None = None
        headers = {**self._build_headers(), **kwargs.pop("headers", {})}
        timeout = kwargs.pop("timeout", None) or self._timeout
        for attempt in range(attempts):
            try:
                async with self._session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=timeout,
                    **kwargs,
                ) as response:
                    await self._raise_for_status(response)
                    if expect == "json":
                        try:
                            return await response.json()
                        except (aiohttp.ContentTypeError, ValueError) as exc:
                            raise BackendError("Response did not contain valid JSON.") from exc
                    if expect == "bytes":
                        return await response.read()
                    return await response.text()
            except (aiohttp.ClientError, TimeoutError) as exc:
                last_error = exc
                _LOGGER.debug(
                    "Backend %s %s attempt %s failed: %s",
                    self.backend_id,
                    method,
                    attempt + 1,
                    exc,
                )
                if attempt >= attempts - 1:
                    raise NetworkError("Network request failed.") from exc
        if last_error is not None:
            raise NetworkError("Network request failed.") from last_error
        raise BackendError("Request failed.")

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        if 200 <= response.status < 300:
            return
        message = await self._error_message_from_response(response)
        if response.status in (401, 403):
            raise AuthError(message or "Authentication failed.", detail=message)
        if response.status == 404:
            raise NotFoundError(message or "Resource not found.", detail=message)
        if response.status == 409:
            raise InvalidStateError(message or "Request conflicts with current state.")
        raise RemoteError(
            message or "Something went wrong",
            detail=f"Backend request failed with status {response.status}.",
        )

    async def _error_message_from_response(self, response: aiohttp.ClientResponse) -> str | None:
        try:
            data = await response.json()
        except (aiohttp.ContentTypeError, ValueError):
            return None
        if isinstance(data, dict):
            error = data.get("error") or data.get("message")
            if isinstance(error, str) and error.strip():
                return error.strip()
        return None

    def _normalize_base_url(self, base_url: str | None) -> str | None:
        if base_url is None:
            return None
        if not isinstance(base_url, str) or not base_url.strip():
            raise ValidationError("base_url must be a non-empty string.")
        return base_url.strip().rstrip("/")

    def _normalize_api_uri(self, api_uri: str | None) -> str:
        if api_uri is None:
            return ""
        if not isinstance(api_uri, str):
            raise ValidationError("api_uri must be a string.")
        normalized = api_uri.strip().strip("/")
        if not normalized:
            return ""
        return f"/{normalized}"

    @abstractmethod
    async def login(self, username: str, password: str) -> Session:
        """Authenticate and return the new session."""

    @abstractmethod
    async def register(
        self,
        username: str,
        email: str,
        password: str,
        confirm_password: str | None = None,
    ) -> None:
        """Create a user account."""

    @abstractmethod
    async def get_dashboard_stats(self) -> DashboardStats:
        """Return admin dashboard statistics."""

    @abstractmethod
    async def list_lots(self) -> list[ParkingLot]:
        """Return parking lots visible to the current identity."""

    @abstractmethod
    async def create_lot(self, spec: LotSpec) -> ParkingLot:
        """Create a parking lot."""

    @abstractmethod
    async def update_lot(self, lot_id: str, spec: LotSpec) -> ParkingLot:
        """Update a parking lot."""

    @abstractmethod
    async def delete_lot(self, lot_id: str) -> None:
        """Delete a parking lot without occupied spots."""

    @abstractmethod
    async def list_users(self) -> list[UserAccount]:
        """Return registered users."""

    @abstractmethod
    async def book(self, lot_id: str) -> Reservation:
        """Book one spot in a lot."""

    @abstractmethod
    async def release(self, reservation_id: str) -> ReleaseReceipt:
        """Release an active reservation."""

    @abstractmethod
    async def list_reservations(self) -> list[Reservation]:
        """Return the reservation history of the current identity, newest first."""

    @abstractmethod
    async def export_csv(self) -> bytes:
        """Return the reservation history as CSV."""
