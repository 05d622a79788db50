"""The backend-agnostic filesystem contract."""

from __future__ import annotations

import abc
import dataclasses
from typing import Iterable, List, Optional

from .file_types import classify_kind, is_hidden, is_image

LOCAL = "local"
REMOTE = "remote"


@dataclasses.dataclass
class FileEntry:
    """Light weight description of a directory entry."""

    name: str
    path: str
    is_dir: bool
    size: int = 0
    modified: float = 0.0
    kind: str = ""
    is_image: bool = False
    is_hidden: bool = False
    permissions: Optional[str] = None

    @classmethod
    def build(
        cls,
        name: str,
        path: str,
        is_dir: bool,
        size: int = 0,
        modified: float = 0.0,
        permissions: Optional[str] = None,
    ) -> "FileEntry":
        return cls(
            name=name,
            path=path,
            is_dir=is_dir,
            size=size or 0,
            modified=modified or 0.0,
            kind=classify_kind(name, is_dir),
            is_image=(not is_dir) and is_image(name),
            is_hidden=is_hidden(name),
            permissions=permissions,
        )


@dataclasses.dataclass
class FileStat:
    size: int
    modified: float
    is_dir: bool
    permissions: Optional[str] = None


def finalize_listing(entries: Iterable[FileEntry], include_hidden: bool) -> List[FileEntry]:
    """Drop ``.``/``..`` and hidden entries, then sort folders first."""
    visible = [
        entry
        for entry in entries
        if entry.name not in (".", "..") and (include_hidden or not entry.is_hidden)
    ]
    visible.sort(key=lambda entry: (not entry.is_dir, entry.name.casefold(), entry.name))
    return visible


class FilesystemBackend(abc.ABC):
    """Operations shared by the local and the SFTP backed filesystem.

    Implementations hold no state beyond a reference to what backs them and
    can be recreated at any time.  Every I/O method is a coroutine.
    """

    @property
    @abc.abstractmethod
    def kind(self) -> str:
        """``"local"`` or ``"remote"``."""

    @property
    def session_id(self) -> Optional[str]:
        return None

    @abc.abstractmethod
    async def list_directory(self, path: str, include_hidden: bool = False) -> List[FileEntry]:
        ...

    @abc.abstractmethod
    async def read_file(self, path: str) -> bytes:
        ...

    @abc.abstractmethod
    async def write_file(self, path: str, data: bytes) -> None:
        ...

    @abc.abstractmethod
    async def rename(self, old_path: str, new_path: str) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, path: str, is_directory: bool) -> None:
        ...

    @abc.abstractmethod
    async def mkdir(self, path: str) -> None:
        ...

    @abc.abstractmethod
    async def exists(self, path: str) -> bool:
        """Return whether *path* exists; never raises."""

    @abc.abstractmethod
    async def stat(self, path: str) -> FileStat:
        ...

    @abc.abstractmethod
    async def home_directory(self) -> str:
        ...

    @abc.abstractmethod
    def parent_directory(self, path: str) -> str:
        ...

    @abc.abstractmethod
    def join_path(self, *segments: str) -> str:
        ...

    @abc.abstractmethod
    def dirname(self, path: str) -> str:
        ...

    @abc.abstractmethod
    def basename(self, path: str) -> str:
        ...

    @abc.abstractmethod
    async def test_connection(self) -> bool:
        ...

    @abc.abstractmethod
    async def disconnect(self) -> None:
        ...
