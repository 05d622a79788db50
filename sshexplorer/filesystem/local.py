"""Filesystem backend over the local OS file API."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
import stat
from functools import partial
from typing import Any, Callable, List, Tuple

from ..errors import FileOperationError, PathNotFoundError
from ..platform_utils import get_home_dir
from .base import LOCAL, FileEntry, FileStat, FilesystemBackend, finalize_listing
from .file_types import mode_to_str

logger = logging.getLogger(__name__)


def translate_os_error(exc: OSError, path: str) -> FileOperationError:
    """Map an ``OSError`` onto the sshexplorer error taxonomy."""
    detail = exc.strerror or str(exc) or exc.__class__.__name__
    if isinstance(exc, FileNotFoundError) or getattr(exc, "errno", None) == errno.ENOENT:
        return PathNotFoundError(path, detail)
    return FileOperationError(f"{path}: {detail}", path)


def _scan_directory(path: str) -> List[Tuple[str, bool]]:
    names: List[Tuple[str, bool]] = []
    with os.scandir(path) as it:
        for entry in it:
            try:
                is_dir = entry.is_dir()
            except OSError:
                is_dir = False
            names.append((entry.name, is_dir))
    return names


def _write_bytes(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


class LocalBackend(FilesystemBackend):
    """Browse the machine sshexplorer runs on."""

    @property
    def kind(self) -> str:
        return LOCAL

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def _io(self, path: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await self._run(func, *args)
        except OSError as exc:
            raise translate_os_error(exc, path) from exc
        except ValueError as exc:
            # Embedded NUL bytes and similar malformed paths
            raise FileOperationError(f"{path!r}: {exc}", path) from exc

    async def _build_entry(self, directory: str, name: str, is_dir: bool) -> FileEntry:
        full_path = os.path.join(directory, name)
        try:
            st = await self._run(os.stat, full_path)
        except OSError as exc:
            # Broken symlinks and unreadable entries are still listed
            logger.debug("Could not stat %s: %s", full_path, exc)
            return FileEntry.build(name, full_path, is_dir)
        return FileEntry.build(
            name, full_path, is_dir, st.st_size, st.st_mtime, mode_to_str(st.st_mode)
        )

    async def list_directory(self, path: str, include_hidden: bool = False) -> List[FileEntry]:
        names = await self._io(path, _scan_directory, path)
        if not include_hidden:
            names = [(name, is_dir) for name, is_dir in names if not name.startswith(".")]
        entries = await asyncio.gather(
            *(self._build_entry(path, name, is_dir) for name, is_dir in names)
        )
        return finalize_listing(entries, include_hidden)

    async def read_file(self, path: str) -> bytes:
        return await self._io(path, _read_bytes, path)

    async def write_file(self, path: str, data: bytes) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        await self._io(path, _write_bytes, path, data)

    async def rename(self, old_path: str, new_path: str) -> None:
        await self._io(old_path, os.rename, old_path, new_path)

    async def delete(self, path: str, is_directory: bool) -> None:
        if is_directory:
            await self._io(path, shutil.rmtree, path)
        else:
            await self._io(path, os.unlink, path)
        logger.debug("Deleted %s", path)

    async def mkdir(self, path: str) -> None:
        await self._io(path, os.mkdir, path)

    async def exists(self, path: str) -> bool:
        try:
            return await self._run(os.path.lexists, path)
        except (OSError, ValueError):
            return False

    async def stat(self, path: str) -> FileStat:
        st = await self._io(path, os.stat, path)
        return FileStat(
            size=st.st_size,
            modified=st.st_mtime,
            is_dir=stat.S_ISDIR(st.st_mode),
            permissions=mode_to_str(st.st_mode),
        )

    async def home_directory(self) -> str:
        return get_home_dir()

    def parent_directory(self, path: str) -> str:
        return os.path.dirname(os.path.normpath(path))

    def join_path(self, *segments: str) -> str:
        return os.path.join(*segments) if segments else ""

    def dirname(self, path: str) -> str:
        return os.path.dirname(path)

    def basename(self, path: str) -> str:
        return os.path.basename(path)

    async def test_connection(self) -> bool:
        return True

    async def disconnect(self) -> None:
        return None
