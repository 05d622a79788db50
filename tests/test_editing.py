import asyncio
import os

import pytest

from sshexplorer.editing import edit_copy
from sshexplorer.errors import PathNotFoundError
from sshexplorer.filesystem import LocalBackend, RemoteBackend
from sshexplorer.session import ConnectionSession, SessionConfig


class RecordingBackend(LocalBackend):
    def __init__(self):
        super().__init__()
        self.writes = []

    async def write_file(self, path, data):
        self.writes.append(path)
        await super().write_file(path, data)


def test_changes_are_written_back(tmp_path):
    target = tmp_path / "notes.txt"
    target.write_text("before")
    backend = RecordingBackend()

    async def scenario():
        async with edit_copy(backend, str(target)) as scratch:
            assert scratch.read_text() == "before"
            assert scratch.name.endswith("_notes.txt")
            scratch.write_text("after")
        return scratch

    scratch = asyncio.run(scenario())

    assert target.read_text() == "after"
    assert backend.writes == [str(target)]
    assert not scratch.exists()


def test_unchanged_copy_is_not_written(tmp_path):
    target = tmp_path / "notes.txt"
    target.write_text("same")
    backend = RecordingBackend()

    async def scenario():
        async with edit_copy(backend, str(target)) as scratch:
            return scratch

    scratch = asyncio.run(scenario())

    assert backend.writes == []
    assert not scratch.exists()


def test_failed_edit_discards_changes(tmp_path):
    target = tmp_path / "notes.txt"
    target.write_text("keep")
    backend = RecordingBackend()
    seen = []

    async def scenario():
        async with edit_copy(backend, str(target)) as scratch:
            seen.append(scratch)
            scratch.write_text("half written")
            raise RuntimeError("editor crashed")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())

    assert target.read_text() == "keep"
    assert backend.writes == []
    assert not seen[0].exists()


def test_missing_source_creates_no_scratch_file(tmp_path):
    async def scenario():
        async with edit_copy(LocalBackend(), str(tmp_path / "absent.txt")):
            pass

    with pytest.raises(PathNotFoundError):
        asyncio.run(scenario())


def test_remote_file_round_trip(ssh_server, remote_tree, fast_options):
    session = ConnectionSession(
        SessionConfig(id="e1", name="Edit", host="server.example.com", username="tester", password="pw"),
        fast_options,
    )

    async def scenario():
        await session.connect()
        try:
            backend = RemoteBackend(session)
            async with edit_copy(backend, "/home/tester/notes.txt") as scratch:
                scratch.write_bytes(b"edited remotely")
        finally:
            await session.disconnect()

    asyncio.run(scenario())

    with open(os.path.join(remote_tree, "notes.txt"), "rb") as f:
        assert f.read() == b"edited remotely"
