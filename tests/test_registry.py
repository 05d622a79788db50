import asyncio
import json

import paramiko
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from sshexplorer.errors import ConfigError, CredentialsMissingError, ProfileNotFoundError
from sshexplorer.profiles import Credentials
from sshexplorer.session import ConnectionStatus


def _write_key(tmp_path, name="id_ed25519", password=None):
    key = ed25519.Ed25519PrivateKey.generate()
    if password:
        data = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(password.encode()),
        )
    else:
        data = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.OpenSSH,
            serialization.NoEncryption(),
        )
    path = tmp_path / name
    path.write_bytes(data)
    return str(path)


def _create(registry, **overrides):
    values = dict(
        name="Build box",
        host="build.example.com",
        port=22,
        username="tester",
        auth_method="password",
        credentials=Credentials(password="secret"),
        save_credentials=True,
    )
    values.update(overrides)
    return asyncio.run(registry.create_profile(**values))


def test_create_profile_persists_without_secret(registry, catalogue, memory_keyring):
    profile_id = _create(registry, save_credentials=False)

    profiles = registry.list_profiles()
    assert [p.id for p in profiles] == [profile_id]
    assert profiles[0].host == "build.example.com"
    assert memory_keyring.entries == {}

    with open(catalogue.path, encoding="utf-8") as f:
        stored = json.load(f)
    assert "password" not in json.dumps(stored)


def test_create_profile_stores_secret_when_asked(registry, memory_keyring):
    profile_id = _create(registry)

    payload = memory_keyring.entries[("sshExplorer", f"ssh-creds-{profile_id}")]
    assert json.loads(payload) == {"password": "secret"}


def test_create_profile_validates_input(registry):
    with pytest.raises(ConfigError):
        _create(registry, auth_method="kerberos")
    with pytest.raises(ConfigError):
        _create(registry, port=70000)
    assert registry.list_profiles() == []


def test_connect_unknown_profile(registry):
    with pytest.raises(ProfileNotFoundError):
        asyncio.run(registry.connect("missing"))


def test_connect_is_idempotent(registry, ssh_server):
    profile_id = _create(registry)

    async def scenario():
        first = await registry.connect(profile_id)
        second = await registry.connect(profile_id)
        assert first is second
        assert first.status is ConnectionStatus.CONNECTED
        await registry.disconnect_all()

    asyncio.run(scenario())
    assert len(ssh_server.clients) == 1
    assert ssh_server.clients[0].connect_calls[0]["password"] == "secret"


def test_concurrent_connects_share_session(registry, ssh_server):
    profile_id = _create(registry)

    async def scenario():
        sessions = await asyncio.gather(*(registry.connect(profile_id) for _ in range(3)))
        assert len({id(s) for s in sessions}) == 1
        await registry.disconnect_all()

    asyncio.run(scenario())
    assert len(ssh_server.clients) == 1


def test_connect_without_saved_password(registry, ssh_server):
    profile_id = _create(registry, save_credentials=False)

    with pytest.raises(CredentialsMissingError) as excinfo:
        asyncio.run(registry.connect(profile_id))

    assert excinfo.value.profile_name == "Build box"
    assert "Build box" in excinfo.value.message
    assert ssh_server.clients == []


def test_connect_with_one_shot_credentials(registry, ssh_server, memory_keyring):
    profile_id = _create(registry, save_credentials=False)

    async def scenario():
        session = await registry.connect(profile_id, Credentials(password="typed"))
        assert session.is_connected
        await registry.disconnect(profile_id)

    asyncio.run(scenario())
    assert ssh_server.clients[0].connect_calls[0]["password"] == "typed"
    assert memory_keyring.entries == {}


def test_connect_with_key_file(registry, ssh_server, tmp_path):
    key_path = _write_key(tmp_path)
    profile_id = _create(
        registry,
        auth_method="key",
        credentials=Credentials(private_key_path=key_path),
        save_credentials=True,
    )

    async def scenario():
        session = await registry.connect(profile_id)
        assert session.is_connected
        await registry.disconnect_all()

    asyncio.run(scenario())
    kwargs = ssh_server.clients[0].connect_calls[0]
    assert isinstance(kwargs["pkey"], paramiko.PKey)
    assert "password" not in kwargs


def test_key_profile_needs_stored_entry(registry, ssh_server, credential_store, tmp_path):
    key_path = _write_key(tmp_path)
    profile_id = _create(
        registry,
        auth_method="key",
        credentials=Credentials(private_key_path=key_path),
        save_credentials=False,
    )
    assert registry.get_profile(profile_id).private_key_path == key_path
    assert asyncio.run(credential_store.get(profile_id)) is None

    with pytest.raises(CredentialsMissingError) as excinfo:
        asyncio.run(registry.connect(profile_id))

    assert excinfo.value.profile_name == "Build box"
    assert ssh_server.clients == []


def test_key_profile_connects_with_one_shot_key_path(registry, ssh_server, tmp_path):
    key_path = _write_key(tmp_path)
    profile_id = _create(
        registry,
        auth_method="key",
        credentials=Credentials(private_key_path=key_path),
        save_credentials=False,
    )

    async def scenario():
        session = await registry.connect(profile_id, Credentials(private_key_path=key_path))
        assert session.is_connected
        await registry.disconnect_all()

    asyncio.run(scenario())
    assert isinstance(ssh_server.clients[0].connect_calls[0]["pkey"], paramiko.PKey)


def test_encrypted_key_without_passphrase(registry, ssh_server, tmp_path):
    key_path = _write_key(tmp_path, password="hunter2")
    profile_id = _create(
        registry,
        auth_method="key",
        credentials=Credentials(private_key_path=key_path),
        save_credentials=True,
    )

    with pytest.raises(CredentialsMissingError):
        asyncio.run(registry.connect(profile_id))
    assert ssh_server.clients == []


def test_encrypted_key_with_passphrase(registry, ssh_server, tmp_path):
    key_path = _write_key(tmp_path, password="hunter2")
    profile_id = _create(
        registry,
        auth_method="key",
        credentials=Credentials(private_key_path=key_path, passphrase="hunter2"),
        save_credentials=True,
    )

    async def scenario():
        session = await registry.connect(profile_id)
        assert session.is_connected
        await registry.disconnect_all()

    asyncio.run(scenario())
    assert isinstance(ssh_server.clients[0].connect_calls[0]["pkey"], paramiko.PKey)


def test_key_profile_without_key(registry, ssh_server):
    profile_id = _create(registry, auth_method="key", credentials=None, save_credentials=False)

    with pytest.raises(CredentialsMissingError):
        asyncio.run(registry.connect(profile_id))


def test_test_connection_leaves_no_trace(registry, ssh_server, memory_keyring):
    result = asyncio.run(
        registry.test_connection(
            "scratch.example.com", 22, "tester", "password", Credentials(password="pw")
        )
    )

    assert result.success is True
    assert result.error is None
    assert registry.list_profiles() == []
    assert registry.active_sessions() == []
    assert memory_keyring.calls == []
    assert ssh_server.clients[0].closed


def test_test_connection_reports_failure(registry, ssh_server):
    ssh_server.connect_errors.append(paramiko.AuthenticationException("Authentication failed."))

    result = asyncio.run(
        registry.test_connection("scratch.example.com", 22, "tester", "password", Credentials(password="x"))
    )

    assert result.success is False
    assert "Authentication failed." in result.error
    assert ssh_server.clients[0].closed


def test_test_connection_rejects_bad_port(registry, ssh_server):
    result = asyncio.run(registry.test_connection("h", "abc", "u", "password", Credentials(password="x")))
    assert result.success is False
    assert ssh_server.clients == []


def test_delete_profile_cascades(registry, ssh_server, memory_keyring, credential_store):
    profile_id = _create(registry)

    async def scenario():
        session = await registry.connect(profile_id)
        await registry.delete_profile(profile_id)
        return session

    session = asyncio.run(scenario())

    assert session.status is ConnectionStatus.DISCONNECTED
    assert registry.get_session(profile_id) is None
    assert registry.list_profiles() == []
    assert memory_keyring.entries == {}
    assert ("delete", "sshExplorer", f"ssh-creds-{profile_id}") in memory_keyring.calls
    assert asyncio.run(credential_store.get(profile_id)) is None
    with pytest.raises(ProfileNotFoundError):
        asyncio.run(registry.connect(profile_id))
    assert len(ssh_server.clients) == 1


def test_delete_profile_without_secret(registry):
    profile_id = _create(registry, save_credentials=False)
    asyncio.run(registry.delete_profile(profile_id))
    assert registry.list_profiles() == []


def test_rename_profile(registry):
    profile_id = _create(registry)

    renamed = asyncio.run(registry.rename_profile(profile_id, "Renamed"))

    assert renamed.name == "Renamed"
    assert registry.get_profile(profile_id).name == "Renamed"
    assert registry.get_profile(profile_id).host == "build.example.com"
    with pytest.raises(ProfileNotFoundError):
        asyncio.run(registry.rename_profile("missing", "x"))


def test_disconnect_all_swallows_failures(registry, ssh_server, monkeypatch):
    first = _create(registry, name="one")
    second = _create(registry, name="two")

    async def scenario():
        s1 = await registry.connect(first)
        s2 = await registry.connect(second)

        async def broken_disconnect():
            raise RuntimeError("boom")

        monkeypatch.setattr(s1, "disconnect", broken_disconnect)
        await registry.disconnect_all()
        return s2

    s2 = asyncio.run(scenario())
    assert registry.active_sessions() == []
    assert s2.status is ConnectionStatus.DISCONNECTED


def test_reconnect_reuses_session(registry, ssh_server):
    profile_id = _create(registry)

    async def scenario():
        session = await registry.connect(profile_id)
        again = await registry.reconnect(profile_id)
        assert again is session
        assert again.is_connected
        await registry.disconnect_all()

    asyncio.run(scenario())
    assert len(ssh_server.clients) == 2
