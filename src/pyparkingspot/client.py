"""Client facade for backend discovery and instantiation."""

from __future__ import annotations

import asyncio
import importlib
from typing import Any

import aiohttp

from .backend.base import BaseBackend
from .backend.loader import BackendManifest, get_manifest, list_backends
from .exceptions import BackendError
from .models import BackendInfo

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


def _load_backend_data(backend_id: str) -> tuple[BackendManifest, type[BaseBackend]]:
    if not backend_id:
        raise BackendError("Backend id is required.")
    manifest = get_manifest(backend_id)
    module_name = f"pyparkingspot.backend.{backend_id}"
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        raise BackendError("Backend module could not be imported.") from exc
    backend_cls = getattr(module, "Backend", None)
    if backend_cls is None:
        raise BackendError("Backend module does not export Backend.")
    if not isinstance(backend_cls, type) or not issubclass(backend_cls, BaseBackend):
        raise BackendError("Backend must inherit from BaseBackend.")
    return manifest, backend_cls


class Client:
    """Facade for backend discovery and access."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        base_url: str | None = None,
        api_uri: str | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        retry_count: int = 0,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._base_url = base_url
        self._api_uri = api_uri
        self._timeout = timeout or _DEFAULT_TIMEOUT
        self._retry_count = max(0, retry_count)

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def list_backends(self) -> list[BackendInfo]:
        return await asyncio.to_thread(list_backends)

    async def get_backend(
        self,
        backend_id: str,
        *,
        base_url: str | None = None,
        api_uri: str | None = None,
        **options: Any,
    ) -> BaseBackend:
        """Build a backend; ``options`` go to the backend constructor."""
        manifest, backend_cls = await asyncio.to_thread(_load_backend_data, backend_id)
        session = self._ensure_session() if manifest.remote else self._session
        return backend_cls(
            session,
            manifest,
            base_url=base_url if base_url is not None else self._base_url,
            api_uri=api_uri if api_uri is not None else self._api_uri,
            timeout=self._timeout,
            retry_count=self._retry_count,
            **options,
        )

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session
