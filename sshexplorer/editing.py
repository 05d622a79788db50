"""Edit a backend file through a local scratch copy."""

from __future__ import annotations

import contextlib
import logging
import os
import pathlib
import tempfile
from typing import AsyncIterator

from .filesystem import FilesystemBackend

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def edit_copy(backend: FilesystemBackend, path: str) -> AsyncIterator[pathlib.Path]:
    """Download *path* to a temporary file and yield its local path.

    When the block exits normally and the temporary file changed, the new
    content is written back through *backend*.  The temporary file is
    removed in every case.
    """
    original = await backend.read_file(path)

    temp_file_obj = tempfile.NamedTemporaryFile(
        mode='w+b',
        prefix=f"sshexplorer_edit_{os.getpid()}_",
        suffix=f"_{backend.basename(path)}",
        delete=False,
    )
    temp_file = pathlib.Path(temp_file_obj.name)
    try:
        with temp_file_obj:
            temp_file_obj.write(original)

        yield temp_file

        updated = temp_file.read_bytes()
        if updated != original:
            await backend.write_file(path, updated)
            logger.info("Saved %d bytes back to %s", len(updated), path)
        else:
            logger.debug("%s unchanged, nothing to write back", path)
    finally:
        try:
            temp_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove temporary file %s: %s", temp_file, exc)
