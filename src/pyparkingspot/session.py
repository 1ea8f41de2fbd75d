"""Persisted login session (token and identity)."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .exceptions import ValidationError
from .models import Identity, Session
from .util import normalize_role, normalize_username

_LOGGER = logging.getLogger(__name__)


class SessionStore:
    """Keeps the current session, optionally mirrored to a JSON file.

    Without a path the store lives in memory only.
    """

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._session: Session | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def current(self) -> Session | None:
        return self._session

    def save(self, token: str, identity: Identity) -> Session:
        if not isinstance(token, str) or not token:
            raise ValidationError("token must be a non-empty string.")
        session = Session(token=token, identity=identity)
        if self._path is not None:
            payload = {
                "token": token,
                "user": {"username": identity.username, "role": identity.role},
            }
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload), encoding="utf-8")
        self._session = session
        return session

    def load(self) -> Session | None:
        """Restore the session from disk, or return the in-memory one."""
        if self._path is None:
            return self._session
        if not self._path.is_file():
            self._session = None
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            self._session = _session_from_payload(data)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            _LOGGER.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            self._session = None
        return self._session

    def clear(self) -> None:
        if self._path is not None:
            self._path.unlink(missing_ok=True)
        self._session = None


def _session_from_payload(data: Any) -> Session:
    if not isinstance(data, dict):
        raise ValidationError("Session data must be an object.")
    token = data.get("token")
    user = data.get("user")
    if not isinstance(token, str) or not token:
        raise ValidationError("Session token is missing.")
    if not isinstance(user, dict):
        raise ValidationError("Session user is missing.")
    identity = Identity(
        username=normalize_username(user.get("username")),
        role=normalize_role(user.get("role")),  # type: ignore[arg-type]
    )
    return Session(token=token, identity=identity)
