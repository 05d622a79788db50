"""
Workspace for sshexplorer
Holds the single active filesystem backend and dispatches front end commands
"""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import commands as cmd
from .commands import COMMAND_TYPES, CommandResult
from .errors import ConfigError, ExplorerError, FileOperationError
from .filesystem import LOCAL, REMOTE, FileEntry, FilesystemBackend, LocalBackend, RemoteBackend
from .filesystem.file_types import image_mime_type, is_image
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]


@dataclass
class DirectoryListing:
    path: str
    parent: str
    entries: List[FileEntry] = field(default_factory=list)


def validate_entry_name(name: str) -> str:
    """Reject names that would escape the target directory."""
    if not name or name in (".", ".."):
        raise FileOperationError(f"Invalid name: {name!r}")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if "\x00" in name or any(sep in name for sep in separators):
        raise FileOperationError(f"Name must not contain path separators: {name!r}")
    return name


class Workspace:
    """Explicit context object for one file browser.

    Exactly one backend is active at a time; :meth:`switch_backend` is the
    only way to replace it.
    """

    def __init__(self, registry: ConnectionRegistry, backend: Optional[FilesystemBackend] = None):
        self.registry = registry
        self._backend: FilesystemBackend = backend or LocalBackend()
        self._handlers: Dict[type, Handler] = {
            cmd.GetHomeDirectory: self._get_home_directory,
            cmd.OpenDirectory: self._open_directory,
            cmd.NavigateUp: self._navigate_up,
            cmd.ReadFile: self._read_file,
            cmd.GetPreview: self._get_preview,
            cmd.Rename: self._rename,
            cmd.Delete: self._delete,
            cmd.CreateFile: self._create_file,
            cmd.CreateFolder: self._create_folder,
            cmd.TestConnection: self._test_connection,
            cmd.CreateConnection: self._create_connection,
            cmd.ListConnections: self._list_connections,
            cmd.Connect: self._connect,
            cmd.Disconnect: self._disconnect,
            cmd.Reconnect: self._reconnect,
            cmd.DeleteConnection: self._delete_connection,
            cmd.RenameConnection: self._rename_connection,
            cmd.SwitchBackend: self._switch_backend,
        }
        missing = [t.__name__ for t in COMMAND_TYPES if t not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler registered for: {', '.join(missing)}")

    @property
    def backend(self) -> FilesystemBackend:
        return self._backend

    async def switch_backend(self, kind: str, connection_id: Optional[str] = None) -> FilesystemBackend:
        """Make a fresh backend of *kind* the active one."""
        if kind == LOCAL:
            backend: FilesystemBackend = LocalBackend()
        elif kind == REMOTE:
            if not connection_id:
                raise ConfigError("A connection id is required for the remote backend")
            session = await self.registry.connect(connection_id)
            backend = RemoteBackend(session)
        else:
            raise ConfigError(f"Unknown backend kind: {kind}")

        # Swap only once the new backend is fully usable
        self._backend = backend
        logger.info("Switched to %s backend", backend.kind)
        return backend

    def _fall_back_to_local(self, connection_id: str) -> None:
        if self._backend.session_id == connection_id:
            logger.debug("Connection %s went away; falling back to the local backend", connection_id)
            self._backend = LocalBackend()

    async def execute(self, command: Any) -> CommandResult:
        """Run *command* against the active backend or the registry.

        Errors from the :mod:`sshexplorer.errors` hierarchy are returned as
        a failed :class:`CommandResult`, never raised.
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported command: {command!r}")
        try:
            value = await handler(command)
        except ExplorerError as exc:
            logger.debug("%s failed: %s", type(command).__name__, exc)
            return CommandResult.failure(exc)
        return CommandResult.success(value)

    # -- filesystem commands -------------------------------------------

    async def _listing(self, path: str, include_hidden: bool) -> DirectoryListing:
        backend = self._backend
        entries = await backend.list_directory(path, include_hidden)
        return DirectoryListing(path=path, parent=backend.parent_directory(path), entries=entries)

    async def _get_home_directory(self, command: cmd.GetHomeDirectory) -> str:
        return await self._backend.home_directory()

    async def _open_directory(self, command: cmd.OpenDirectory) -> DirectoryListing:
        return await self._listing(command.path, command.include_hidden)

    async def _navigate_up(self, command: cmd.NavigateUp) -> DirectoryListing:
        parent = self._backend.parent_directory(command.current_path)
        return await self._listing(parent, command.include_hidden)

    async def _read_file(self, command: cmd.ReadFile) -> bytes:
        return await self._backend.read_file(command.path)

    async def _get_preview(self, command: cmd.GetPreview) -> str:
        if not is_image(command.path):
            raise FileOperationError(f"{command.path}: not an image", command.path)
        data = await self._backend.read_file(command.path)
        encoded = base64.b64encode(data).decode("ascii")
        return f"data:{image_mime_type(command.path)};base64,{encoded}"

    async def _target_path(self, dir_path: str, name: str) -> str:
        validate_entry_name(name)
        target = self._backend.join_path(dir_path, name)
        if await self._backend.exists(target):
            raise FileOperationError(f"{target} already exists", target)
        return target

    async def _rename(self, command: cmd.Rename) -> str:
        backend = self._backend
        target = await self._target_path(backend.dirname(command.path), command.new_name)
        await backend.rename(command.path, target)
        logger.debug("Renamed %s to %s", command.path, target)
        return target

    async def _delete(self, command: cmd.Delete) -> None:
        await self._backend.delete(command.path, command.is_directory)

    async def _create_file(self, command: cmd.CreateFile) -> str:
        target = await self._target_path(command.dir_path, command.name)
        await self._backend.write_file(target, b"")
        return target

    async def _create_folder(self, command: cmd.CreateFolder) -> str:
        target = await self._target_path(command.dir_path, command.name)
        await self._backend.mkdir(target)
        return target

    # -- connection commands -------------------------------------------

    async def _test_connection(self, command: cmd.TestConnection):
        return await self.registry.test_connection(
            command.host,
            command.port,
            command.username,
            command.auth_method,
            command.credentials,
        )

    async def _create_connection(self, command: cmd.CreateConnection) -> str:
        return await self.registry.create_profile(
            command.name,
            command.host,
            command.port,
            command.username,
            command.auth_method,
            credentials=command.credentials,
            save_credentials=command.save_credentials,
        )

    async def _list_connections(self, command: cmd.ListConnections):
        return self.registry.list_profiles()

    async def _connect(self, command: cmd.Connect) -> str:
        session = await self.registry.connect(command.connection_id, command.credentials)
        return session.status.value

    async def _disconnect(self, command: cmd.Disconnect) -> None:
        self._fall_back_to_local(command.connection_id)
        await self.registry.disconnect(command.connection_id)

    async def _reconnect(self, command: cmd.Reconnect) -> str:
        session = await self.registry.reconnect(command.connection_id)
        if self._backend.session_id == command.connection_id:
            self._backend = RemoteBackend(session)
        return session.status.value

    async def _delete_connection(self, command: cmd.DeleteConnection) -> None:
        self._fall_back_to_local(command.connection_id)
        await self.registry.delete_profile(command.connection_id)

    async def _rename_connection(self, command: cmd.RenameConnection):
        return await self.registry.rename_profile(command.connection_id, command.new_name)

    async def _switch_backend(self, command: cmd.SwitchBackend) -> str:
        backend = await self.switch_backend(command.kind, command.connection_id)
        return backend.kind
