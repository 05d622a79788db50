"""Connection profiles and the durable profile catalogue."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .errors import ConfigError
from .platform_utils import ensure_secure_permissions, get_config_dir

logger = logging.getLogger(__name__)

AUTH_PASSWORD = "password"
AUTH_KEY = "key"
AUTH_METHODS = (AUTH_PASSWORD, AUTH_KEY)

DEFAULT_PORT = 22


def new_profile_id() -> str:
    return uuid.uuid4().hex


def validate_auth_method(auth_method: str) -> str:
    if auth_method not in AUTH_METHODS:
        raise ConfigError(
            f"Unknown authentication method {auth_method!r}; expected 'password' or 'key'"
        )
    return auth_method


def validate_port(port: Any) -> int:
    try:
        value = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port {port!r}") from None
    if not 0 < value < 65536:
        raise ConfigError(f"Invalid port {port!r}")
    return value


@dataclass
class Credentials:
    """Secret material for one connection.

    ``private_key`` holds key bytes handed over directly by a caller; it is
    never persisted.
    """

    password: Optional[str] = field(default=None, repr=False)
    private_key_path: Optional[str] = None
    passphrase: Optional[str] = field(default=None, repr=False)
    private_key: Optional[bytes] = field(default=None, repr=False)

    def to_storage(self) -> Dict[str, str]:
        data: Dict[str, str] = {}
        if self.password:
            data["password"] = self.password
        if self.private_key_path:
            data["privateKeyPath"] = self.private_key_path
        if self.passphrase:
            data["passphrase"] = self.passphrase
        return data

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> "Credentials":
        return cls(
            password=data.get("password") or None,
            private_key_path=data.get("privateKeyPath") or None,
            passphrase=data.get("passphrase") or None,
        )


@dataclass
class ConnectionProfile:
    """Non-secret description of how to reach one remote host."""

    id: str
    name: str
    host: str
    port: int = DEFAULT_PORT
    username: str = ""
    auth_method: str = AUTH_PASSWORD
    save_credentials: bool = False
    private_key_path: Optional[str] = None

    def __str__(self):
        return f"{self.name} ({self.username}@{self.host}:{self.port})"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "authMethod": self.auth_method,
            "saveCredentials": self.save_credentials,
        }
        if self.private_key_path:
            data["privateKeyPath"] = self.private_key_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionProfile":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data.get("host") or ""),
            host=str(data.get("host") or ""),
            port=int(data.get("port") or DEFAULT_PORT),
            username=str(data.get("username") or ""),
            auth_method=str(data.get("authMethod") or AUTH_PASSWORD),
            save_credentials=bool(data.get("saveCredentials", False)),
            private_key_path=data.get("privateKeyPath") or None,
        )


class ProfileCatalogue:
    """Ordered list of profiles persisted to ``connections.json``.

    Only :class:`~sshexplorer.registry.ConnectionRegistry` writes to the
    catalogue.  Reads return copies so callers cannot mutate stored state.
    """

    FILENAME = "connections.json"

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.path.join(get_config_dir(), self.FILENAME)

    def load(self) -> List[ConnectionProfile]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Failed to read profile catalogue %s: %s", self.path, exc)
            return []

        if not isinstance(raw, list):
            logger.warning("Profile catalogue %s is not a list; ignoring it", self.path)
            return []

        profiles: List[ConnectionProfile] = []
        for item in raw:
            try:
                profiles.append(ConnectionProfile.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed profile entry %r: %s", item, exc)
        return profiles

    def save(self, profiles: List[ConnectionProfile]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, mode=0o700, exist_ok=True)
        payload = [profile.to_dict() for profile in profiles]

        fd, tmp_path = tempfile.mkstemp(prefix=".connections-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            ensure_secure_permissions(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug("Saved %d connection profiles to %s", len(profiles), self.path)

    def find(self, profile_id: str) -> Optional[ConnectionProfile]:
        for profile in self.load():
            if profile.id == profile_id:
                return profile
        return None

    def append(self, profile: ConnectionProfile) -> None:
        profiles = self.load()
        profiles.append(replace(profile))
        self.save(profiles)

    def remove(self, profile_id: str) -> bool:
        profiles = self.load()
        remaining = [p for p in profiles if p.id != profile_id]
        if len(remaining) == len(profiles):
            return False
        self.save(remaining)
        return True

    def update(self, profile_id: str, **changes: Any) -> Optional[ConnectionProfile]:
        profiles = self.load()
        for index, profile in enumerate(profiles):
            if profile.id == profile_id:
                profiles[index] = replace(profile, **changes)
                self.save(profiles)
                return profiles[index]
        return None
