from __future__ import annotations

import aiohttp
import pytest

from pyparkingspot.backend.base import BaseBackend
from pyparkingspot.backend.loader import BackendManifest
from pyparkingspot.exceptions import (
    AuthError,
    BackendError,
    ConfigError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    RemoteError,
    ValidationError,
)
from pyparkingspot.models import Identity, Session


class _FakeResponse:
    def __init__(
        self,
        *,
        status: int = 200,
        json_data: object | None = None,
        text_data: str = "",
        json_error: Exception | None = None,
    ) -> None:
        self.status = status
        self._json_data = json_data
        self._text_data = text_data
        self._json_error = json_error

    async def json(self) -> object:
        if self._json_error is not None:
            raise self._json_error
        return self._json_data

    async def text(self) -> str:
        return self._text_data

    async def read(self) -> bytes:
        return self._text_data.encode("utf-8")


class _FakeRequestContext:
    def __init__(self, response: _FakeResponse) -> None:
        self._response = response

    async def __aenter__(self) -> _FakeResponse:
        return self._response

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _SequenceSession:
    def __init__(self, results: list[object]) -> None:
        self._results = results
        self.calls = 0
        self.requests: list[dict] = []

    def request(self, method: str, url: str, **kwargs) -> _FakeRequestContext:
        self.calls += 1
        self.requests.append({"method": method, "url": url, **kwargs})
        result = self._results[self.calls - 1]
        if isinstance(result, Exception):
            raise result
        return _FakeRequestContext(result)


class _DummyBackend(BaseBackend):
    async def login(self, username, password):  # type: ignore[override]
        raise NotImplementedError

    async def register(self, username, email, password, confirm_password=None):
        raise NotImplementedError

    async def get_dashboard_stats(self):
        raise NotImplementedError

    async def list_lots(self):
        return []

    async def create_lot(self, spec):
        raise NotImplementedError

    async def update_lot(self, lot_id, spec):
        raise NotImplementedError

    async def delete_lot(self, lot_id):
        return None

    async def list_users(self):
        return []

    async def book(self, lot_id):
        raise NotImplementedError

    async def release(self, reservation_id):
        raise NotImplementedError

    async def list_reservations(self):
        return []

    async def export_csv(self):
        return b""


def _manifest(*, remote: bool = True) -> BackendManifest:
    return BackendManifest(id="dummy", name="Dummy", remote=remote)


def _backend(session: object, **kwargs) -> _DummyBackend:
    return _DummyBackend(
        session,  # type: ignore[arg-type]
        _manifest(),
        base_url="https://example.com",
        **kwargs,
    )


def test_remote_backend_requires_session() -> None:
    with pytest.raises(ValidationError):
        _DummyBackend(None, _manifest(remote=True))
    backend = _DummyBackend(None, _manifest(remote=False))
    assert backend.info.remote is False


def test_build_url_validation() -> None:
    backend = _backend(_SequenceSession([]))
    assert backend._build_url("/path") == "https://example.com/path"
    assert backend._build_url("path") == "https://example.com/path"
    with pytest.raises(ValidationError):
        backend._build_url("")
    with pytest.raises(ValidationError):
        backend._build_url("https://example.com/absolute")


def test_build_url_requires_base_url() -> None:
    session = _SequenceSession([])
    backend = _DummyBackend(session, _manifest(), base_url=None)  # type: ignore[arg-type]
    with pytest.raises(ConfigError):
        backend._build_url("path")


def test_build_url_with_api_uri() -> None:
    backend = _backend(_SequenceSession([]), api_uri=" /v1/ ")
    assert backend._build_url("/api/user/book") == "https://example.com/v1/api/user/book"


def test_normalize_api_uri() -> None:
    backend = _backend(_SequenceSession([]))
    assert backend._normalize_api_uri(None) == ""
    assert backend._normalize_api_uri(" /api/v1/ ") == "/api/v1"
    with pytest.raises(ValidationError):
        backend._normalize_api_uri(123)  # type: ignore[arg-type]


def test_restore_and_require_admin() -> None:
    backend = _backend(_SequenceSession([]))
    with pytest.raises(AuthError):
        backend._require_identity()
    backend.restore(Session(token="tok", identity=Identity(username="jane", role="user")))
    assert backend.token == "tok"
    assert backend._build_headers()["Authorization"] == "Bearer tok"
    with pytest.raises(AuthError, match="Admin"):
        backend._require_admin()


@pytest.mark.asyncio
async def test_logout_clears_token() -> None:
    backend = _backend(_SequenceSession([]))
    backend.restore(Session(token="tok", identity=Identity(username="root", role="admin")))
    await backend.logout()
    assert backend.token is None
    assert backend.identity is None
    assert "Authorization" not in backend._build_headers()


def test_validate_registration() -> None:
    backend = _backend(_SequenceSession([]))
    assert backend._validate_registration("jane", "Jane@example.com", "secret1", "secret1") == (
        "jane",
        "jane@example.com",
        "secret1",
    )
    with pytest.raises(ValidationError, match="fill all fields"):
        backend._validate_registration("jane", "", "secret1", "secret1")


@pytest.mark.asyncio
async def test_request_json_retries_get() -> None:
    session = _SequenceSession(
        [
            aiohttp.ClientError("boom"),
            _FakeResponse(json_data={"ok": True}),
        ]
    )
    backend = _backend(session, retry_count=1)
    result = await backend._request_json("GET", "/path")
    assert result == {"ok": True}
    assert session.calls == 2


@pytest.mark.asyncio
async def test_request_json_no_retry_on_post() -> None:
    session = _SequenceSession([aiohttp.ClientError("boom")])
    backend = _backend(session, retry_count=2)
    with pytest.raises(NetworkError):
        await backend._request_json("POST", "/path")
    assert session.calls == 1


@pytest.mark.asyncio
async def test_request_json_invalid_response() -> None:
    session = _SequenceSession([_FakeResponse(json_error=ValueError("bad"))])
    backend = _backend(session)
    with pytest.raises(BackendError):
        await backend._request_json("GET", "/path")


@pytest.mark.asyncio
async def test_request_passes_error_message_through() -> None:
    session = _SequenceSession(
        [_FakeResponse(status=400, json_data={"error": "No spots available in this lot"})]
    )
    backend = _backend(session)
    with pytest.raises(RemoteError, match="No spots available in this lot") as excinfo:
        await backend._request_json("POST", "/api/user/book")
    assert "400" in excinfo.value.detail


@pytest.mark.asyncio
async def test_request_error_without_body_uses_default_message() -> None:
    session = _SequenceSession([_FakeResponse(status=500, json_error=ValueError("html"))])
    backend = _backend(session)
    with pytest.raises(RemoteError, match="Something went wrong"):
        await backend._request_text("GET", "/path")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error"),
    [(401, AuthError), (403, AuthError), (404, NotFoundError), (409, InvalidStateError)],
)
async def test_request_status_mapping(status: int, error: type[Exception]) -> None:
    session = _SequenceSession([_FakeResponse(status=status, json_data={"error": "nope"})])
    backend = _backend(session)
    with pytest.raises(error, match="nope"):
        await backend._request_text("GET", "/path")


@pytest.mark.asyncio
async def test_request_sends_bearer_token() -> None:
    session = _SequenceSession([_FakeResponse(text_data="ok")])
    backend = _backend(session)
    backend.restore(Session(token="abc", identity=Identity(username="jane", role="user")))
    assert await backend._request_text("GET", "/path") == "ok"
    assert session.requests[0]["headers"]["Authorization"] == "Bearer abc"


@pytest.mark.asyncio
async def test_request_bytes() -> None:
    session = _SequenceSession([_FakeResponse(text_data="id,cost\n")])
    backend = _backend(session)
    assert await backend._request_bytes("GET", "/export") == b"id,cost\n"


@pytest.mark.asyncio
async def test_request_without_session() -> None:
    backend = _DummyBackend(None, _manifest(remote=False), base_url="https://example.com")
    with pytest.raises(ConfigError):
        await backend._request_text("GET", "/path")
