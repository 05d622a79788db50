"""
Connection registry for sshexplorer
Owns the durable profile catalogue and the live session map
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from .credentials import CredentialStore, is_encrypted_key, is_valid_private_key
from .errors import ConfigError, CredentialsMissingError, ExplorerError, ProfileNotFoundError
from .profiles import (
    AUTH_KEY,
    ConnectionProfile,
    Credentials,
    ProfileCatalogue,
    new_profile_id,
    validate_auth_method,
    validate_port,
)
from .session import (
    ConnectionSession,
    ConnectionStatus,
    SessionConfig,
    SessionOptions,
    TestResult,
)

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Manages connection profiles, their credentials and live sessions.

    This is the only component that writes the profile catalogue or talks
    to the :class:`CredentialStore`.
    """

    def __init__(
        self,
        catalogue: Optional[ProfileCatalogue] = None,
        credential_store: Optional[CredentialStore] = None,
        options: Optional[SessionOptions] = None,
    ):
        self.catalogue = catalogue or ProfileCatalogue()
        self.credential_store = credential_store or CredentialStore()
        self.options = options or SessionOptions()
        self._sessions: Dict[str, ConnectionSession] = {}

    # -- profiles -------------------------------------------------------

    def list_profiles(self) -> List[ConnectionProfile]:
        """Get list of all saved connection profiles"""
        return self.catalogue.load()

    def get_profile(self, profile_id: str) -> ConnectionProfile:
        profile = self.catalogue.find(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    async def create_profile(
        self,
        name: str,
        host: str,
        port: int,
        username: str,
        auth_method: str,
        credentials: Optional[Credentials] = None,
        save_credentials: bool = False,
    ) -> str:
        validate_auth_method(auth_method)
        port = validate_port(port)
        if not host:
            raise ConfigError("A host is required")
        credentials = credentials or Credentials()

        profile = ConnectionProfile(
            id=new_profile_id(),
            name=name or host,
            host=host,
            port=port,
            username=username,
            auth_method=auth_method,
            save_credentials=bool(save_credentials),
            private_key_path=credentials.private_key_path,
        )
        self.catalogue.append(profile)

        if save_credentials:
            await self.credential_store.store(profile.id, credentials)

        logger.info("Connection profile created: %s", profile)
        return profile.id

    async def rename_profile(self, profile_id: str, new_name: str) -> ConnectionProfile:
        updated = self.catalogue.update(profile_id, name=new_name)
        if updated is None:
            raise ProfileNotFoundError(profile_id)
        logger.debug("Connection %s renamed to %s", profile_id, new_name)
        return updated

    async def delete_profile(self, profile_id: str) -> None:
        # Disconnect first so a session never outlives its credentials
        await self.disconnect(profile_id)
        removed = self.catalogue.remove(profile_id)
        await self.credential_store.delete(profile_id)
        if removed:
            logger.info("Connection profile removed: %s", profile_id)
        else:
            logger.debug("Deleted credentials for unknown profile %s", profile_id)

    # -- sessions -------------------------------------------------------

    def get_session(self, profile_id: str) -> Optional[ConnectionSession]:
        return self._sessions.get(profile_id)

    def active_sessions(self) -> List[ConnectionSession]:
        return list(self._sessions.values())

    async def _resolve_session_config(
        self,
        profile: ConnectionProfile,
        override: Optional[Credentials],
    ) -> SessionConfig:
        credentials = override
        if credentials is None:
            # Only one-shot credentials may bypass the store
            credentials = await self.credential_store.get(profile.id)
            if credentials is None:
                raise CredentialsMissingError(profile.name)

        config = SessionConfig(
            id=profile.id,
            name=profile.name,
            host=profile.host,
            port=profile.port,
            username=profile.username,
            auth_method=profile.auth_method,
        )

        if profile.auth_method == AUTH_KEY:
            private_key = credentials.private_key
            key_path = credentials.private_key_path
            passphrase = credentials.passphrase
            if not private_key and not key_path:
                raise CredentialsMissingError(profile.name)
            if not private_key:
                private_key = await self.credential_store.read_private_key(key_path)
            if not is_valid_private_key(private_key):
                raise ConfigError(f"Private key for {profile.name} is not a recognised key format")
            if is_encrypted_key(private_key) and not passphrase:
                raise CredentialsMissingError(profile.name, "Key passphrase")
            config.private_key = private_key
            config.passphrase = passphrase
        else:
            if not credentials.password:
                raise CredentialsMissingError(profile.name, "Password")
            config.password = credentials.password
        return config

    async def connect(
        self,
        profile_id: str,
        credentials: Optional[Credentials] = None,
    ) -> ConnectionSession:
        """Connect to a saved profile, reusing a live session when present.

        *credentials* are used for this attempt only and never stored.
        """
        session = self._sessions.get(profile_id)
        if session is not None and session.status is ConnectionStatus.CONNECTED:
            return session

        profile = self.get_profile(profile_id)
        config = await self._resolve_session_config(profile, credentials)

        # No await between lookup and insert, so concurrent callers share one session
        session = self._sessions.get(profile_id)
        if session is None:
            session = ConnectionSession(config, self.options)
            self._sessions[profile_id] = session
        elif not session.is_connected:
            session.update_config(config)

        await session.connect()
        return session

    async def reconnect(self, profile_id: str) -> ConnectionSession:
        session = self._sessions.get(profile_id)
        if session is None:
            return await self.connect(profile_id)
        await session.disconnect()
        return await self.connect(profile_id)

    async def test_connection(
        self,
        host: str,
        port: int,
        username: str,
        auth_method: str,
        credentials: Optional[Credentials] = None,
    ) -> TestResult:
        """Try a connection with ad-hoc settings without registering anything."""
        try:
            validate_auth_method(auth_method)
            port = validate_port(port)
        except ConfigError as exc:
            return TestResult(False, exc.message)

        credentials = credentials or Credentials()
        private_key = credentials.private_key
        if auth_method == AUTH_KEY and not private_key and credentials.private_key_path:
            try:
                private_key = await self.credential_store.read_private_key(
                    credentials.private_key_path
                )
            except ExplorerError as exc:
                return TestResult(False, exc.message)

        session = ConnectionSession(
            SessionConfig(
                id=f"test-{new_profile_id()}",
                name="Test Connection",
                host=host,
                port=port,
                username=username,
                auth_method=auth_method,
                password=credentials.password,
                private_key=private_key,
                passphrase=credentials.passphrase,
            ),
            self.options,
        )
        try:
            return await session.test_connection()
        finally:
            await session.disconnect()

    async def disconnect(self, profile_id: str) -> None:
        session = self._sessions.pop(profile_id, None)
        if session is not None:
            await session.disconnect()
            logger.info("Disconnected connection %s", session.name)

    async def disconnect_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        if not sessions:
            return
        results = await asyncio.gather(
            *(session.disconnect() for session in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.warning("Error disconnecting %s: %s", session.name, result)
