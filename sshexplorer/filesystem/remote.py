"""Filesystem backend that talks SFTP through a :class:`ConnectionSession`.

Every call is funnelled through :meth:`ConnectionSession.run`, so SFTP
requests are serialized on the session worker thread and a dead or
disconnected session surfaces as :class:`StaleConnectionError` instead of
an obscure paramiko failure.
"""

from __future__ import annotations

import asyncio
import errno
import io
import logging
import posixpath
import stat
from typing import Any, Callable, List, Optional

import paramiko

from ..errors import ExplorerError, FileOperationError, PathNotFoundError
from .base import REMOTE, FileEntry, FileStat, FilesystemBackend, finalize_listing
from .file_types import mode_to_str

logger = logging.getLogger(__name__)


def _error_code(exc: BaseException) -> Optional[int]:
    error_code = getattr(exc, "errno", None)
    if error_code is None and exc.args:
        first_arg = exc.args[0]
        if isinstance(first_arg, int):
            error_code = first_arg
    return error_code


def translate_sftp_error(exc: BaseException, path: str) -> FileOperationError:
    """Map a paramiko/``IOError`` failure for *path* onto our error types."""
    if isinstance(exc, FileNotFoundError) or _error_code(exc) == errno.ENOENT:
        return PathNotFoundError(path, getattr(exc, "strerror", None) or "No such file or directory")
    detail = getattr(exc, "strerror", None) or str(exc) or exc.__class__.__name__
    return FileOperationError(f"{path}: {detail}", path)


def stat_isdir(attr: paramiko.SFTPAttributes) -> bool:
    """Return ``True`` when the attribute represents a directory."""
    return stat.S_ISDIR(attr.st_mode or 0)


def _read(sftp: paramiko.SFTPClient, path: str) -> bytes:
    buffer = io.BytesIO()
    sftp.getfo(path, buffer)
    return buffer.getvalue()


def _write(sftp: paramiko.SFTPClient, path: str, data: bytes) -> None:
    sftp.putfo(io.BytesIO(data), path)


def _remove_tree(sftp: paramiko.SFTPClient, path: str) -> None:
    """Remove *path* and everything below it, depth first."""
    for entry in sftp.listdir_attr(path):
        if entry.filename in (".", ".."):
            continue
        child = posixpath.join(path, entry.filename)
        # listdir_attr reports lstat data, so symlinks to folders are unlinked not followed
        if stat_isdir(entry):
            _remove_tree(sftp, child)
        else:
            sftp.remove(child)
    sftp.rmdir(path)


def _resolve_directory(sftp: paramiko.SFTPClient, candidate: str, normalize: bool) -> Optional[str]:
    resolved = sftp.normalize(candidate) if normalize else candidate
    if not resolved:
        return None
    return resolved if stat_isdir(sftp.stat(resolved)) else None


class RemoteBackend(FilesystemBackend):
    """Browse a host over the SFTP channel of a live session."""

    def __init__(self, session):
        self.session = session
        self._home: Optional[str] = None

    def __repr__(self):
        return f"<RemoteBackend {self.session.username}@{self.session.host}>"

    @property
    def kind(self) -> str:
        return REMOTE

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id

    async def _sftp(self, path: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await self.session.run(func, *args)
        except ExplorerError:
            raise
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise translate_sftp_error(exc, path) from exc

    # -- listing ---------------------------------------------------------

    async def _build_entry(self, directory: str, attr: paramiko.SFTPAttributes) -> FileEntry:
        name = attr.filename
        full_path = posixpath.join(directory, name)
        mode = attr.st_mode
        if mode is not None and stat.S_ISLNK(mode):
            try:
                attr = await self._sftp(full_path, lambda sftp, p: sftp.stat(p), full_path)
            except FileOperationError as exc:
                logger.debug("Could not resolve symlink %s: %s", full_path, exc)
                return FileEntry.build(name, full_path, False, permissions=mode_to_str(mode))
            mode = attr.st_mode
        is_dir = mode is not None and stat.S_ISDIR(mode)
        return FileEntry.build(
            name,
            full_path,
            is_dir,
            attr.st_size or 0,
            float(attr.st_mtime or 0),
            mode_to_str(mode),
        )

    async def list_directory(self, path: str, include_hidden: bool = False) -> List[FileEntry]:
        attrs = await self._sftp(path, lambda sftp, p: sftp.listdir_attr(p), path)
        attrs = [
            attr
            for attr in attrs
            if attr.filename not in (".", "..")
            and (include_hidden or not attr.filename.startswith("."))
        ]
        entries = await asyncio.gather(*(self._build_entry(path, attr) for attr in attrs))
        return finalize_listing(entries, include_hidden)

    # -- file operations -------------------------------------------------

    async def read_file(self, path: str) -> bytes:
        return await self._sftp(path, _read, path)

    async def write_file(self, path: str, data: bytes) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        await self._sftp(path, _write, path, data)

    async def rename(self, old_path: str, new_path: str) -> None:
        await self._sftp(old_path, lambda sftp, a, b: sftp.rename(a, b), old_path, new_path)

    async def delete(self, path: str, is_directory: bool) -> None:
        if is_directory:
            await self._sftp(path, _remove_tree, path)
        else:
            await self._sftp(path, lambda sftp, p: sftp.remove(p), path)
        logger.info("Removed remote %s %s", "directory" if is_directory else "file", path)

    async def mkdir(self, path: str) -> None:
        await self._sftp(path, lambda sftp, p: sftp.mkdir(p), path)

    async def exists(self, path: str) -> bool:
        try:
            await self._sftp(path, lambda sftp, p: sftp.stat(p), path)
        except ExplorerError as exc:
            logger.debug("exists(%s) -> False: %s", path, exc)
            return False
        return True

    async def stat(self, path: str) -> FileStat:
        attr = await self._sftp(path, lambda sftp, p: sftp.stat(p), path)
        return FileStat(
            size=attr.st_size or 0,
            modified=float(attr.st_mtime or 0),
            is_dir=stat_isdir(attr),
            permissions=mode_to_str(attr.st_mode),
        )

    # -- paths -----------------------------------------------------------

    async def home_directory(self) -> str:
        if self._home is not None:
            return self._home

        username = self.session.username
        candidates = [("~", True)]
        if username:
            candidates.append((f"/home/{username}", False))
        candidates.extend([("/root", False), ("/home", False), ("/", False)])

        for candidate, normalize in candidates:
            try:
                resolved = await self.session.run(_resolve_directory, candidate, normalize)
            except (OSError, EOFError, paramiko.SSHException) as exc:
                logger.debug("Home candidate %s rejected: %s", candidate, exc)
                continue
            if resolved:
                logger.debug("Remote home directory for %s is %s", self.session.host, resolved)
                self._home = resolved
                return resolved
            logger.debug("Home candidate %s is not a directory", candidate)

        logger.warning("No usable home directory on %s; using /", self.session.host)
        self._home = "/"
        return self._home

    def parent_directory(self, path: str) -> str:
        return posixpath.dirname(posixpath.normpath(path))

    def join_path(self, *segments: str) -> str:
        return posixpath.join(*segments) if segments else ""

    def dirname(self, path: str) -> str:
        return posixpath.dirname(path)

    def basename(self, path: str) -> str:
        return posixpath.basename(path)

    # -- session ---------------------------------------------------------

    async def test_connection(self) -> bool:
        return await self.session.is_healthy()

    async def disconnect(self) -> None:
        self._home = None
        await self.session.disconnect()
