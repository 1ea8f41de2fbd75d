import aiohttp
import pytest

from pyparkingspot import Client
from pyparkingspot.backend.memory import Backend as MemoryBackend
from pyparkingspot.backend.remote import Backend as RemoteBackend


@pytest.mark.asyncio
async def test_client_does_not_close_injected_session() -> None:
    session = aiohttp.ClientSession()
    client = Client(session=session)
    await client.aclose()

    assert session.closed is False
    await session.close()


@pytest.mark.asyncio
async def test_memory_backend_needs_no_session() -> None:
    client = Client()
    backend = await client.get_backend("memory", seed=False)
    assert isinstance(backend, MemoryBackend)
    assert backend.info.remote is False
    assert client._session is None
    await client.aclose()


@pytest.mark.asyncio
async def test_remote_backend_gets_owned_session() -> None:
    async with Client(base_url="https://parking.example", retry_count=2) as client:
        backend = await client.get_backend("remote")
        assert isinstance(backend, RemoteBackend)
        assert backend._build_url("/api/user/book") == "https://parking.example/api/user/book"
        assert backend._retry_count == 2
        session = client._session
        assert session is not None
    assert session.closed is True
