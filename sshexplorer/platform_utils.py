"""Platform-related utility functions."""

import logging
import os
import platform
from pathlib import Path

APP_NAME = "sshexplorer"

logger = logging.getLogger(__name__)


def _normalize_path(path: str) -> str:
    """Expand user references and return an absolute path."""
    return os.path.abspath(os.path.expanduser(path))


def is_windows() -> bool:
    return platform.system() == "Windows"


def get_home_dir() -> str:
    """Return the user's home directory as an absolute path.

    ``expanduser`` is consulted first; when it cannot resolve ``~`` we fall
    back to :meth:`Path.home` and finally to the current working directory.
    """
    expanded = os.path.expanduser("~")
    if expanded and expanded != "~":
        return _normalize_path(expanded)
    try:
        return str(Path.home())
    except (RuntimeError, KeyError):
        logger.warning(
            "Unable to determine the user's home directory; "
            "falling back to the current working directory."
        )
        return os.getcwd()


def _xdg_dir(env_name: str, default_relative: str) -> str:
    base = os.environ.get(env_name)
    if not base:
        base = os.path.join(get_home_dir(), default_relative)
    return os.path.join(_normalize_path(base), APP_NAME)


def get_config_dir() -> str:
    """Return the per-user configuration directory for sshexplorer.

    ``SSHEXPLORER_CONFIG_DIR`` overrides the XDG location.
    """
    override = os.environ.get("SSHEXPLORER_CONFIG_DIR")
    if override:
        return _normalize_path(override)
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def get_data_dir() -> str:
    """Return the per-user data directory for sshexplorer."""
    override = os.environ.get("SSHEXPLORER_DATA_DIR")
    if override:
        return _normalize_path(override)
    return _xdg_dir("XDG_DATA_HOME", os.path.join(".local", "share"))


def get_ssh_dir() -> str:
    """Return the user's SSH directory.

    The location can be overridden by setting the ``SSHEXPLORER_SSH_DIR``
    environment variable.
    """
    override = os.environ.get("SSHEXPLORER_SSH_DIR")
    if override:
        return _normalize_path(override)
    return _normalize_path(os.path.join(get_home_dir(), ".ssh"))


def ensure_secure_permissions(path: str, mode: int) -> None:
    """Best effort ``chmod`` used for files holding connection data."""
    if is_windows():
        return
    try:
        os.chmod(path, mode)
    except OSError as exc:
        logger.warning("Could not set permissions %o on %s: %s", mode, path, exc)
