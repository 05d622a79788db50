"""A single SSH/SFTP session and its connection state machine.

:class:`ConnectionSession` owns exactly one :class:`paramiko.SSHClient` and
the SFTP channel opened on it.  Paramiko is blocking and its SFTP client is
not thread-safe, so every call touching the transport is queued on a
single-worker thread pool owned by the session while the public API stays
``async``.

State transitions happen under a per-session :class:`asyncio.Lock`, which
keeps the periodic health check from flipping the status while a
``connect()`` or ``disconnect()`` is in progress.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import paramiko

from .credentials import load_private_key
from .errors import (
    AuthError,
    ConfigError,
    ExplorerError,
    NetworkError,
    SSHConnectionError,
    StaleConnectionError,
)
from .profiles import AUTH_KEY, AUTH_PASSWORD, DEFAULT_PORT

logger = logging.getLogger(__name__)

CONNECTION_LOST = "Connection lost"


class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


_ALLOWED_TRANSITIONS = {
    ConnectionStatus.DISCONNECTED: {ConnectionStatus.CONNECTING},
    ConnectionStatus.CONNECTING: {ConnectionStatus.CONNECTED, ConnectionStatus.ERROR},
    ConnectionStatus.CONNECTED: {ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR},
    ConnectionStatus.ERROR: {ConnectionStatus.DISCONNECTED},
}

StatusListener = Callable[["ConnectionSession", ConnectionStatus, ConnectionStatus], None]


@dataclass
class SessionOptions:
    """Transport tuning shared by every session."""

    connect_timeout: float = 30.0
    retries: int = 2
    retry_backoff: float = 2.0
    health_check_interval: float = 30.0
    auto_add_host_keys: bool = True
    strict_host_key_checking: str = ""
    known_hosts_path: Optional[str] = None

    @classmethod
    def from_config(cls, config: Any, known_hosts_path: Optional[str] = None) -> "SessionOptions":
        ssh_cfg: Dict[str, Any] = config.get_ssh_config()
        return cls(
            connect_timeout=float(ssh_cfg.get("connection_timeout") or cls.connect_timeout),
            retries=int(ssh_cfg.get("connect_retries", cls.retries)),
            retry_backoff=float(ssh_cfg.get("retry_backoff", cls.retry_backoff)),
            health_check_interval=float(
                ssh_cfg.get("health_check_interval", cls.health_check_interval)
            ),
            auto_add_host_keys=bool(ssh_cfg.get("auto_add_host_keys", True)),
            strict_host_key_checking=str(ssh_cfg.get("strict_host_key_checking") or ""),
            known_hosts_path=known_hosts_path,
        )


@dataclass
class SessionConfig:
    """Everything needed to open one session, secrets included."""

    id: str
    name: str
    host: str
    port: int = DEFAULT_PORT
    username: str = ""
    auth_method: str = AUTH_PASSWORD
    password: Optional[str] = field(default=None, repr=False)
    private_key: Optional[Union[bytes, str, paramiko.PKey]] = field(default=None, repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)


@dataclass
class TestResult:
    success: bool
    error: Optional[str] = None

    __test__ = False  # not a pytest test class


def select_host_key_policy(strict_host: str, auto_add: bool) -> paramiko.MissingHostKeyPolicy:
    """Return an appropriate Paramiko host key policy based on settings."""

    normalized = (strict_host or "").strip().lower()
    if normalized in {"yes", "always"}:
        return paramiko.RejectPolicy()
    if normalized in {"no", "off", "accept-new", "accept_new"}:
        return paramiko.AutoAddPolicy()
    if normalized in {"ask", "accept-new-once", "ask-new"}:
        return paramiko.WarningPolicy()
    return paramiko.AutoAddPolicy() if auto_add else paramiko.RejectPolicy()


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class ConnectionSession:
    """One live SSH/SFTP session bound to a connection profile."""

    def __init__(self, config: SessionConfig, options: Optional[SessionOptions] = None):
        self._config = config
        self.options = options or SessionOptions()
        self._status = ConnectionStatus.DISCONNECTED
        self._last_error: Optional[str] = None
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._lock = asyncio.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._listeners: List[StatusListener] = []

    def __repr__(self):
        return (
            f"<ConnectionSession {self.name!r} {self.username}@{self.host}:{self.port} "
            f"status={self._status.value}>"
        )

    # -- properties -----------------------------------------------------

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def host(self) -> str:
        return self._config.host

    @property
    def port(self) -> int:
        return self._config.port

    @property
    def username(self) -> str:
        return self._config.username

    @property
    def config(self) -> SessionConfig:
        return replace(self._config)

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def transport(self) -> Optional[paramiko.SFTPClient]:
        """The live SFTP handle, or ``None`` unless connected."""
        if self._status is ConnectionStatus.CONNECTED:
            return self._sftp
        return None

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED and self._sftp is not None

    def update_config(self, config: SessionConfig) -> None:
        """Swap in freshly resolved connection settings for the next connect."""
        if config.id != self._config.id:
            raise ValueError("Cannot rebind a session to another profile")
        self._config = config

    def add_status_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    # -- helpers --------------------------------------------------------

    def _transition(self, new_status: ConnectionStatus) -> None:
        old_status = self._status
        if new_status not in _ALLOWED_TRANSITIONS[old_status]:
            raise RuntimeError(
                f"Invalid session transition {old_status.value} -> {new_status.value}"
            )
        self._status = new_status
        logger.debug("Session %s: %s -> %s", self.name, old_status.value, new_status.value)
        for listener in list(self._listeners):
            try:
                listener(self, old_status, new_status)
            except Exception as exc:
                logger.error("Status listener failed for %s: %s", self.name, exc, exc_info=True)

    def _worker(self) -> ThreadPoolExecutor:
        # Use single worker to serialize SFTP operations - SFTP connections are not thread-safe
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"sftp-{self.host}"
            )
        return self._executor

    async def _in_worker(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._worker(), partial(func, *args))

    def _build_connect_kwargs(self) -> Dict[str, Any]:
        cfg = self._config
        timeout = self.options.connect_timeout
        kwargs: Dict[str, Any] = {
            "hostname": cfg.host,
            "port": cfg.port or DEFAULT_PORT,
            "username": cfg.username,
            "timeout": timeout,
            "banner_timeout": timeout,
            "auth_timeout": timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }

        if cfg.auth_method == AUTH_PASSWORD and cfg.password:
            kwargs["password"] = cfg.password
        elif cfg.auth_method == AUTH_KEY and cfg.private_key:
            if isinstance(cfg.private_key, paramiko.PKey):
                kwargs["pkey"] = cfg.private_key
            else:
                kwargs["pkey"] = load_private_key(
                    cfg.private_key, cfg.passphrase, label=f"private key for {cfg.name}"
                )
        else:
            raise ConfigError(f"Invalid authentication configuration for {cfg.host}")
        return kwargs

    def _open_transport(self, connect_kwargs: Dict[str, Any]) -> Tuple[paramiko.SSHClient, paramiko.SFTPClient]:
        client = paramiko.SSHClient()
        try:
            client.load_system_host_keys()
        except (OSError, paramiko.SSHException) as exc:
            logger.debug("Unable to load system host keys: %s", exc)

        known_hosts_path = self.options.known_hosts_path
        if known_hosts_path:
            if os.path.exists(known_hosts_path):
                try:
                    client.load_host_keys(known_hosts_path)
                except (OSError, paramiko.SSHException) as exc:
                    logger.debug("Failed to load known hosts from %s: %s", known_hosts_path, exc)
            else:
                logger.debug("Known hosts file not found at %s", known_hosts_path)

        client.set_missing_host_key_policy(
            select_host_key_policy(
                self.options.strict_host_key_checking, self.options.auto_add_host_keys
            )
        )

        try:
            client.connect(**connect_kwargs)
            sftp = client.open_sftp()
        except BaseException:
            try:
                client.close()
            except Exception as close_exc:  # pragma: no cover - cleanup only
                logger.debug("Error closing partially opened client: %s", close_exc)
            raise
        return client, sftp

    async def _open_with_retries(self) -> Tuple[paramiko.SSHClient, paramiko.SFTPClient]:
        connect_kwargs = self._build_connect_kwargs()
        attempts = max(0, self.options.retries) + 1
        delay = self.options.retry_backoff
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            logger.debug(
                "Connecting to %s@%s:%s (attempt %d/%d)",
                self.username,
                self.host,
                self.port,
                attempt,
                attempts,
            )
            try:
                return await self._in_worker(self._open_transport, connect_kwargs)
            except paramiko.AuthenticationException as exc:
                raise AuthError(self.host, _describe(exc)) from exc
            except paramiko.BadHostKeyException as exc:
                raise AuthError(self.host, _describe(exc)) from exc
            except (OSError, EOFError, paramiko.SSHException) as exc:
                last_error = exc
                if attempt < attempts:
                    logger.warning(
                        "Connection attempt %d to %s failed: %s; retrying in %.1fs",
                        attempt,
                        self.host,
                        _describe(exc),
                        delay,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2

        assert last_error is not None
        raise NetworkError(self.host, _describe(last_error)) from last_error

    async def _close_transport(self) -> None:
        sftp, client = self._sftp, self._client
        self._sftp = None
        self._client = None
        executor, self._executor = self._executor, None

        def _close() -> None:
            for closable, label in ((sftp, "SFTP client"), (client, "SSH client")):
                if closable is None:
                    continue
                try:
                    closable.close()
                except Exception as exc:
                    logger.debug("Error closing %s: %s", label, exc)

        if sftp is not None or client is not None:
            # Not on the session worker: it may be stuck on the dead transport
            await asyncio.get_running_loop().run_in_executor(None, _close)
        if executor is not None:
            executor.shutdown(wait=False)

    # -- health monitoring ----------------------------------------------

    def _start_health_monitor(self) -> None:
        interval = self.options.health_check_interval
        if interval <= 0:
            return
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.get_running_loop().create_task(
            self._monitor_loop(interval), name=f"health-{self.host}"
        )

    async def _stop_health_monitor(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _monitor_loop(self, interval: float) -> None:
        logger.debug("Health monitor started for %s", self.host)
        while True:
            await asyncio.sleep(interval)
            async with self._lock:
                if self._status is not ConnectionStatus.CONNECTED:
                    break
                if await self.is_healthy():
                    continue
                logger.warning("Health check failed for %s; marking connection as lost", self.host)
                await self._close_transport()
                self._last_error = CONNECTION_LOST
                self._transition(ConnectionStatus.ERROR)
                break
        logger.debug("Health monitor exiting for %s", self.host)

    # -- public API -----------------------------------------------------

    async def connect(self) -> None:
        async with self._lock:
            if self._status is ConnectionStatus.CONNECTED and self._sftp is not None:
                return

            await self._stop_health_monitor()
            if self._status is ConnectionStatus.ERROR:
                self._transition(ConnectionStatus.DISCONNECTED)
            self._transition(ConnectionStatus.CONNECTING)
            self._last_error = None
            try:
                client, sftp = await self._open_with_retries()
            except ExplorerError as exc:
                self._last_error = exc.cause if isinstance(exc, SSHConnectionError) else exc.message
                await self._close_transport()
                self._transition(ConnectionStatus.ERROR)
                logger.error("Connection to %s failed: %s", self.host, self._last_error)
                raise
            except BaseException as exc:
                self._last_error = _describe(exc)
                await self._close_transport()
                self._transition(ConnectionStatus.ERROR)
                raise

            self._client = client
            self._sftp = sftp
            self._transition(ConnectionStatus.CONNECTED)
            self._start_health_monitor()
            logger.info("Connected to %s@%s:%s", self.username, self.host, self.port)

    async def test_connection(self) -> TestResult:
        try:
            await self.connect()
        except ExplorerError as exc:
            return TestResult(False, exc.message)
        except Exception as exc:
            logger.debug("Unexpected error while testing %s", self.host, exc_info=True)
            return TestResult(False, _describe(exc))
        return TestResult(True)

    async def is_healthy(self) -> bool:
        sftp = self._sftp
        if self._status is not ConnectionStatus.CONNECTED or sftp is None:
            return False
        try:
            await self._in_worker(sftp.normalize, ".")
        except Exception as exc:
            logger.debug("Health check failed for %s: %s", self.host, exc)
            return False
        return True

    async def reconnect(self) -> None:
        await self.disconnect()
        await self.connect()

    async def disconnect(self) -> None:
        await self._stop_health_monitor()
        async with self._lock:
            await self._close_transport()
            if self._status is not ConnectionStatus.DISCONNECTED:
                self._transition(ConnectionStatus.DISCONNECTED)
            self._last_error = None
        logger.debug("Disconnected from %s", self.host)

    # -- access for backends --------------------------------------------

    def require_sftp(self) -> paramiko.SFTPClient:
        """Return the SFTP client or raise :class:`StaleConnectionError`."""
        if self._status is ConnectionStatus.ERROR:
            raise StaleConnectionError(self.host, (self._last_error or "connection error").lower())
        if self._status is not ConnectionStatus.CONNECTED or self._sftp is None:
            raise StaleConnectionError(self.host, "not connected")
        return self._sftp

    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run ``func(sftp, *args)`` on the session worker thread."""
        sftp = self.require_sftp()
        return await self._in_worker(func, sftp, *args)
