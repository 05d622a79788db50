import errno
import os
import posixpath
import shutil
import sys
import types

import keyring.backend
import keyring.errors
import paramiko
import pytest

# Ensure project root is on sys.path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from sshexplorer.credentials import CredentialStore  # noqa: E402
from sshexplorer.profiles import ProfileCatalogue  # noqa: E402
from sshexplorer.registry import ConnectionRegistry  # noqa: E402
from sshexplorer.session import SessionOptions  # noqa: E402


class MemoryKeyring(keyring.backend.KeyringBackend):
    """Keyring backend that keeps secrets in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries = {}
        self.calls = []

    def set_password(self, service, username, password):
        self.calls.append(("set", service, username))
        self.entries[(service, username)] = password

    def get_password(self, service, username):
        self.calls.append(("get", service, username))
        return self.entries.get((service, username))

    def delete_password(self, service, username):
        self.calls.append(("delete", service, username))
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise keyring.errors.PasswordDeleteError("Password not found") from None


class FakeSFTP:
    """SFTP double serving a directory tree on the local disk.

    Remote absolute paths map onto ``root``.  ``home`` is what ``~`` and
    ``.`` normalize to; set it to ``None`` to make that resolution fail.
    """

    def __init__(self, root, home="/home/tester"):
        self.root = str(root)
        self.home = home
        self.broken = False
        self.closed = False
        self.calls = []

    def _check(self, name, *args):
        self.calls.append((name,) + args)
        if self.broken:
            raise EOFError("Socket is closed")
        if self.closed:
            raise OSError("Socket is closed")

    def _local(self, path):
        if not path.startswith("/"):
            if self.home is None:
                raise FileNotFoundError(errno.ENOENT, "No such file")
            path = posixpath.join(self.home, path)
        path = posixpath.normpath(path)
        return os.path.join(self.root, path.lstrip("/"))

    def normalize(self, path):
        self._check("normalize", path)
        if path in ("~", "."):
            if self.home is None:
                raise IOError(errno.ENOENT, "No such file")
            return self.home
        return posixpath.normpath(path if path.startswith("/") else posixpath.join(self.home or "/", path))

    def stat(self, path):
        self._check("stat", path)
        return paramiko.SFTPAttributes.from_stat(os.stat(self._local(path)), posixpath.basename(path))

    def lstat(self, path):
        self._check("lstat", path)
        return paramiko.SFTPAttributes.from_stat(os.lstat(self._local(path)), posixpath.basename(path))

    def listdir_attr(self, path="."):
        self._check("listdir_attr", path)
        local = self._local(path)
        return [
            paramiko.SFTPAttributes.from_stat(os.lstat(os.path.join(local, name)), name)
            for name in sorted(os.listdir(local))
        ]

    def getfo(self, path, fl):
        self._check("getfo", path)
        with open(self._local(path), "rb") as f:
            data = f.read()
        fl.write(data)
        return len(data)

    def putfo(self, fl, path):
        self._check("putfo", path)
        with open(self._local(path), "wb") as f:
            f.write(fl.read())

    def rename(self, old, new):
        self._check("rename", old, new)
        os.rename(self._local(old), self._local(new))

    def remove(self, path):
        self._check("remove", path)
        os.unlink(self._local(path))

    def rmdir(self, path):
        self._check("rmdir", path)
        os.rmdir(self._local(path))

    def mkdir(self, path, mode=0o777):
        self._check("mkdir", path)
        os.mkdir(self._local(path))

    def close(self):
        self.closed = True


class DummyClient:
    """Stand-in for :class:`paramiko.SSHClient` driven by a ``server``."""

    def __init__(self, server):
        self.server = server
        self.policies = []
        self.loaded_host_keys = []
        self.loaded_system = False
        self.connect_calls = []
        self.sftp = None
        self.closed = False
        server.clients.append(self)

    def set_missing_host_key_policy(self, policy):
        self.policies.append(policy)

    def load_system_host_keys(self):
        self.loaded_system = True

    def load_host_keys(self, path):
        self.loaded_host_keys.append(path)

    def connect(self, **kwargs):
        self.connect_calls.append(kwargs)
        if self.server.connect_errors:
            raise self.server.connect_errors.pop(0)

    def open_sftp(self):
        self.sftp = FakeSFTP(self.server.root, home=self.server.home)
        self.server.sftps.append(self.sftp)
        return self.sftp

    def close(self):
        self.closed = True


@pytest.fixture
def memory_keyring():
    return MemoryKeyring()


@pytest.fixture
def credential_store(memory_keyring):
    return CredentialStore(backend=memory_keyring)


@pytest.fixture
def catalogue(tmp_path):
    return ProfileCatalogue(str(tmp_path / "config" / "connections.json"))


@pytest.fixture
def fast_options():
    return SessionOptions(connect_timeout=5, retries=2, retry_backoff=0, health_check_interval=0)


@pytest.fixture
def registry(catalogue, credential_store, fast_options):
    return ConnectionRegistry(catalogue, credential_store, fast_options)


@pytest.fixture
def ssh_server(monkeypatch, tmp_path):
    """Patch paramiko so every SSHClient talks to a fake server rooted in tmp_path."""
    root = tmp_path / "server"
    (root / "home" / "tester").mkdir(parents=True)
    (root / "root").mkdir()
    server = types.SimpleNamespace(
        root=str(root),
        home="/home/tester",
        connect_errors=[],
        clients=[],
        sftps=[],
    )
    monkeypatch.setattr(paramiko, "SSHClient", lambda: DummyClient(server))
    return server


@pytest.fixture
def remote_tree(ssh_server):
    """Populate the fake server home with a few files and folders."""
    home = os.path.join(ssh_server.root, "home", "tester")
    os.makedirs(os.path.join(home, "docs", "nested"))
    with open(os.path.join(home, "docs", "nested", "deep.txt"), "w") as f:
        f.write("deep")
    with open(os.path.join(home, "notes.txt"), "w") as f:
        f.write("hello remote")
    with open(os.path.join(home, ".profile"), "w") as f:
        f.write("export X=1")
    with open(os.path.join(home, "Photo.PNG"), "wb") as f:
        f.write(b"\x89PNG\r\n")
    yield home
    shutil.rmtree(home, ignore_errors=True)
