"""The closed set of commands a front end can send to a :class:`Workspace`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .profiles import AUTH_PASSWORD, DEFAULT_PORT, Credentials


@dataclass(frozen=True)
class GetHomeDirectory:
    pass


@dataclass(frozen=True)
class OpenDirectory:
    path: str
    include_hidden: bool = False


@dataclass(frozen=True)
class NavigateUp:
    current_path: str
    include_hidden: bool = False


@dataclass(frozen=True)
class ReadFile:
    path: str


@dataclass(frozen=True)
class GetPreview:
    path: str


@dataclass(frozen=True)
class Rename:
    path: str
    new_name: str


@dataclass(frozen=True)
class Delete:
    path: str
    is_directory: bool = False


@dataclass(frozen=True)
class CreateFile:
    dir_path: str
    name: str


@dataclass(frozen=True)
class CreateFolder:
    dir_path: str
    name: str


@dataclass(frozen=True)
class TestConnection:
    host: str
    username: str
    port: int = DEFAULT_PORT
    auth_method: str = AUTH_PASSWORD
    credentials: Optional[Credentials] = None

    __test__ = False  # not a pytest test class


@dataclass(frozen=True)
class CreateConnection:
    name: str
    host: str
    username: str
    port: int = DEFAULT_PORT
    auth_method: str = AUTH_PASSWORD
    credentials: Optional[Credentials] = None
    save_credentials: bool = False


@dataclass(frozen=True)
class ListConnections:
    pass


@dataclass(frozen=True)
class Connect:
    connection_id: str
    credentials: Optional[Credentials] = None


@dataclass(frozen=True)
class Disconnect:
    connection_id: str


@dataclass(frozen=True)
class Reconnect:
    connection_id: str


@dataclass(frozen=True)
class DeleteConnection:
    connection_id: str


@dataclass(frozen=True)
class RenameConnection:
    connection_id: str
    new_name: str


@dataclass(frozen=True)
class SwitchBackend:
    kind: str
    connection_id: Optional[str] = None


COMMAND_TYPES = (
    GetHomeDirectory,
    OpenDirectory,
    NavigateUp,
    ReadFile,
    GetPreview,
    Rename,
    Delete,
    CreateFile,
    CreateFolder,
    TestConnection,
    CreateConnection,
    ListConnections,
    Connect,
    Disconnect,
    Reconnect,
    DeleteConnection,
    RenameConnection,
    SwitchBackend,
)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of :meth:`Workspace.execute`.

    ``error`` holds the display message and ``error_type`` the name of the
    :class:`~sshexplorer.errors.ExplorerError` subclass when ``ok`` is false.
    """

    ok: bool
    value: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "CommandResult":
        return cls(True, value)

    @classmethod
    def failure(cls, exc: BaseException) -> "CommandResult":
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        return cls(False, None, message, exc.__class__.__name__)
