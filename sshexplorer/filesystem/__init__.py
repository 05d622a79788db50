from .base import LOCAL, REMOTE, FileEntry, FileStat, FilesystemBackend
from .local import LocalBackend
from .remote import RemoteBackend

__all__ = [
    "LOCAL",
    "REMOTE",
    "FileEntry",
    "FileStat",
    "FilesystemBackend",
    "LocalBackend",
    "RemoteBackend",
]
