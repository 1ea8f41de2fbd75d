"""Backend discovery and manifest loading."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from importlib.metadata import PackageNotFoundError
from importlib.resources.abc import Traversable

from ..exceptions import BackendError
from ..models import BackendInfo

MANIFEST_FILENAME = "manifest.json"
SCHEMA_FILENAME = "manifest.schema.json"
_MANIFEST_CACHE: tuple[BackendManifest, ...] | None = None


@dataclass(frozen=True, slots=True)
class BackendManifest:
    id: str
    name: str
    remote: bool


def _backend_root() -> Traversable:
    return resources.files("pyparkingspot.backend")


def load_manifest_schema() -> dict:
    schema_path = _backend_root() / SCHEMA_FILENAME
    return json.loads(schema_path.read_text(encoding="utf-8"))


def _build_manifest(data: dict, folder_name: str) -> BackendManifest:
    if not isinstance(data, dict):
        raise BackendError("Backend manifest must be a JSON object.")
    missing = [key for key in ("id", "name", "remote") if key not in data]
    if missing:
        raise BackendError(f"Backend manifest missing keys: {', '.join(missing)}.")
    backend_id = data["id"]
    name = data["name"]
    remote = data["remote"]
    if not isinstance(backend_id, str) or not backend_id:
        raise BackendError("Backend manifest id must be a non-empty string.")
    if backend_id != folder_name:
        raise BackendError("Backend manifest id must match its folder name.")
    if not isinstance(name, str) or not name:
        raise BackendError("Backend manifest name must be a non-empty string.")
    if not isinstance(remote, bool):
        raise BackendError("Backend manifest remote must be a boolean.")
    return BackendManifest(id=backend_id, name=name, remote=remote)


def iter_manifest_files() -> Iterable[tuple[str, Traversable]]:
    root = _backend_root()
    for entry in root.iterdir():
        if not entry.is_dir():
            continue
        manifest_path = entry / MANIFEST_FILENAME
        if manifest_path.is_file():
            yield entry.name, manifest_path


def load_manifests() -> list[BackendManifest]:
    global _MANIFEST_CACHE
    if _MANIFEST_CACHE is not None:
        return list(_MANIFEST_CACHE)
    manifests: list[BackendManifest] = []
    try:
        for folder_name, manifest_path in sorted(iter_manifest_files(), key=lambda item: item[0]):
            try:
                data = json.loads(manifest_path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise BackendError("Backend manifest is not valid JSON.") from exc
            manifests.append(_build_manifest(data, folder_name))
    except (ModuleNotFoundError, PackageNotFoundError) as exc:
        _MANIFEST_CACHE = None
        raise BackendError("Backend package was not found.") from exc
    _MANIFEST_CACHE = tuple(manifests)
    return list(_MANIFEST_CACHE)


def clear_manifest_cache() -> None:
    """Clear cached backend manifests (used in tests)."""
    global _MANIFEST_CACHE
    _MANIFEST_CACHE = None


def list_backends() -> list[BackendInfo]:
    return [
        BackendInfo(id=manifest.id, name=manifest.name, remote=manifest.remote)
        for manifest in load_manifests()
    ]


def get_manifest(backend_id: str) -> BackendManifest:
    for manifest in load_manifests():
        if manifest.id == backend_id:
            return manifest
    raise BackendError("Backend not found.")
