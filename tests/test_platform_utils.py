import os

from sshexplorer import platform_utils


def test_get_config_dir_override(monkeypatch, tmp_path):
    monkeypatch.setenv("SSHEXPLORER_CONFIG_DIR", str(tmp_path / "conf"))
    assert platform_utils.get_config_dir() == str(tmp_path / "conf")


def test_get_config_dir_xdg(monkeypatch, tmp_path):
    monkeypatch.delenv("SSHEXPLORER_CONFIG_DIR", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    expected = os.path.join(str(tmp_path / "xdg"), "sshexplorer")
    assert platform_utils.get_config_dir() == expected


def test_get_data_dir_default(monkeypatch, tmp_path):
    monkeypatch.delenv("SSHEXPLORER_DATA_DIR", raising=False)
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    monkeypatch.setattr(platform_utils, "get_home_dir", lambda: str(tmp_path))
    expected = os.path.join(str(tmp_path), ".local", "share", "sshexplorer")
    assert platform_utils.get_data_dir() == expected


def test_get_ssh_dir_default(monkeypatch, tmp_path):
    monkeypatch.delenv("SSHEXPLORER_SSH_DIR", raising=False)
    monkeypatch.setattr(platform_utils, "get_home_dir", lambda: str(tmp_path))
    assert platform_utils.get_ssh_dir() == os.path.join(str(tmp_path), ".ssh")


def test_get_ssh_dir_override(monkeypatch, tmp_path):
    override = tmp_path / "custom_ssh"
    monkeypatch.setenv("SSHEXPLORER_SSH_DIR", str(override))
    assert platform_utils.get_ssh_dir() == str(override)


def test_get_home_dir_falls_back_to_path_home(monkeypatch, tmp_path):
    monkeypatch.setattr(platform_utils.os.path, "expanduser", lambda path: path)
    monkeypatch.setattr(platform_utils.Path, "home", classmethod(lambda cls: tmp_path))
    assert platform_utils.get_home_dir() == str(tmp_path)
