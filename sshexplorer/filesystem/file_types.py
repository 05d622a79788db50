"""File classification tables and permission formatting."""

from __future__ import annotations

import posixpath
import stat
from dataclasses import dataclass
from typing import Dict, Optional

FOLDER_KIND = "Folder"

KIND_BY_EXTENSION: Dict[str, str] = {
    # images
    "jpg": "JPEG Image",
    "jpeg": "JPEG Image",
    "png": "PNG Image",
    "gif": "GIF Image",
    "svg": "SVG Image",
    "webp": "WebP Image",
    # video
    "mp4": "MP4 Video",
    "mov": "QuickTime Movie",
    "avi": "AVI Video",
    # audio
    "mp3": "MP3 Audio",
    "wav": "WAV Audio",
    "m4a": "M4A Audio",
    # documents
    "pdf": "PDF Document",
    "doc": "Word Document",
    "docx": "Word Document",
    "txt": "Text Document",
    "md": "Markdown Document",
    # code
    "js": "JavaScript File",
    "ts": "TypeScript File",
    "py": "Python File",
    "java": "Java File",
    "cpp": "C++ File",
    "html": "HTML Document",
    "css": "CSS Stylesheet",
    "json": "JSON File",
    # archives
    "zip": "ZIP Archive",
    "rar": "RAR Archive",
    "tar": "TAR Archive",
    "gz": "GZIP Archive",
}

IMAGE_MIME_TYPES: Dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
}

IMAGE_EXTENSIONS = frozenset(IMAGE_MIME_TYPES)


def extension_of(name: str) -> str:
    """Lower-case extension without the dot (``""`` when there is none)."""
    # posixpath.splitext treats leading-dot names such as ".bashrc" as extensionless
    return posixpath.splitext(name)[1].lower().lstrip(".")


def classify_kind(name: str, is_dir: bool) -> str:
    if is_dir:
        return FOLDER_KIND
    ext = extension_of(name)
    if not ext:
        return "File"
    return KIND_BY_EXTENSION.get(ext, f"{ext.upper()} File")


def is_image(name: str) -> bool:
    return extension_of(name) in IMAGE_EXTENSIONS


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def image_mime_type(name: str) -> str:
    return IMAGE_MIME_TYPES.get(extension_of(name), "image/png")


@dataclass(frozen=True)
class PermissionBits:
    """Read/write/execute rights for user, group and other (3 bits each)."""

    user: int = 0
    group: int = 0
    other: int = 0

    def __post_init__(self):
        for label in ("user", "group", "other"):
            value = getattr(self, label)
            if not 0 <= value <= 7:
                raise ValueError(f"{label} rights must be between 0 and 7, got {value}")

    @classmethod
    def from_mode(cls, mode: int) -> "PermissionBits":
        return cls(user=(mode >> 6) & 0o7, group=(mode >> 3) & 0o7, other=mode & 0o7)

    @property
    def octal(self) -> str:
        return f"{self.user}{self.group}{self.other}"


def _triple(rights: int) -> str:
    r = "r" if rights & 4 else "-"
    w = "w" if rights & 2 else "-"
    x = "x" if rights & 1 else "-"
    return r + w + x


def format_permissions(bits: Optional[PermissionBits], is_dir: bool = False) -> str:
    """Render *bits* like ``ls -l`` does, e.g. ``drwxr-xr-x``."""
    if bits is None:
        return "-" * 10
    prefix = "d" if is_dir else "-"
    return prefix + _triple(bits.user) + _triple(bits.group) + _triple(bits.other)


def mode_to_str(mode: Optional[int]) -> str:
    """Convert a full ``st_mode`` to its ten character representation."""
    if mode is None:
        return format_permissions(None)
    return format_permissions(PermissionBits.from_mode(mode), stat.S_ISDIR(mode))


def human_size(n: float) -> str:
    """Convert bytes to human readable format."""
    for unit in ("B", "KB", "MB", "GB", "TB", "PB"):
        if n < 1024 or unit == "PB":
            return f"{n:.0f} {unit}" if n >= 10 or unit == "B" else f"{n:.1f} {unit}"
        n /= 1024
    return "0 B"
