"""Error types raised by sshexplorer.

Every error carries a short, human readable ``message`` that callers can
show directly.  Lower level exceptions (paramiko, keyring, ``OSError``)
are chained via ``__cause__``.
"""

from __future__ import annotations

from typing import Optional


class ExplorerError(Exception):
    """Base class for all sshexplorer errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigError(ExplorerError):
    """Authentication configuration is missing or contradictory."""


class SSHConnectionError(ExplorerError):
    """Opening a connection to *host* failed."""

    def __init__(self, host: str, cause: str):
        super().__init__(f"Failed to connect to {host}: {cause}")
        self.host = host
        self.cause = cause


class AuthError(SSHConnectionError):
    """The server rejected the supplied credentials."""


class NetworkError(SSHConnectionError):
    """The host was unreachable, timed out or dropped the connection."""


class CredentialsMissingError(ExplorerError):
    """A profile needs a secret that is not available."""

    def __init__(self, profile_name: str, what: str = "Credentials"):
        super().__init__(
            f"{what} not found for connection {profile_name}. "
            "Please reconnect with credentials."
        )
        self.profile_name = profile_name


class CredentialStorageError(ExplorerError):
    """The secure storage backend refused an operation."""


class NotFoundError(ExplorerError):
    """Something looked up by identity does not exist."""


class ProfileNotFoundError(NotFoundError):
    def __init__(self, profile_id: str):
        super().__init__(f"Connection {profile_id} not found")
        self.profile_id = profile_id


class FileOperationError(ExplorerError):
    """A local or remote filesystem operation failed."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class PathNotFoundError(NotFoundError, FileOperationError):
    def __init__(self, path: str, detail: str = "No such file or directory"):
        FileOperationError.__init__(self, f"{path}: {detail}", path)


class StaleConnectionError(ExplorerError):
    """The session backing a remote backend is no longer usable."""

    def __init__(self, host: str, reason: str):
        super().__init__(f"Connection to {host} is not available ({reason}); reconnect to continue")
        self.host = host
        self.reason = reason


__all__ = [
    "AuthError",
    "ConfigError",
    "CredentialStorageError",
    "CredentialsMissingError",
    "ExplorerError",
    "FileOperationError",
    "NetworkError",
    "NotFoundError",
    "PathNotFoundError",
    "ProfileNotFoundError",
    "SSHConnectionError",
    "StaleConnectionError",
]
