"""
Configuration Manager for sshexplorer
Handles application settings persisted as JSON
"""

import copy
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from .platform_utils import get_config_dir, get_ssh_dir

logger = logging.getLogger(__name__)

# Increment this whenever the configuration format changes
CONFIG_VERSION = 1

_DEFAULT_CONFIG: Dict[str, Any] = {
    'config_version': CONFIG_VERSION,
    'ssh': {
        'connection_timeout': 30,
        'connect_retries': 2,
        'retry_backoff': 2.0,
        'health_check_interval': 30,
        'auto_add_host_keys': True,
        'strict_host_key_checking': '',
        'debug_enabled': False,
    },
    'file_manager': {
        'show_hidden': False,
    },
    'security': {
        'store_passwords': True,
    },
}


class Config:
    """Configuration manager for sshexplorer"""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir or get_config_dir()
        self.config_file = os.path.join(self.config_dir, 'config.json')
        self.config_data = self.load_json_config()

    def get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values"""
        return copy.deepcopy(_DEFAULT_CONFIG)

    def load_json_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        if not os.path.exists(self.config_file):
            default_config = self.get_default_config()
            self.save_json_config(default_config)
            return default_config

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to load JSON config: %s", e)
            return self.get_default_config()

        if not isinstance(config, dict):
            logger.warning("Ignoring malformed config file %s", self.config_file)
            return self.get_default_config()

        # Purge outdated configurations
        stored_version = config.get('config_version', 0)
        if not isinstance(stored_version, int) or stored_version < CONFIG_VERSION:
            backup_file = f"{self.config_file}.bak"
            try:
                os.replace(self.config_file, backup_file)
                logger.warning(
                    "Outdated config version %s detected; backing up to %s and regenerating defaults",
                    stored_version,
                    backup_file,
                )
            except OSError as exc:
                logger.warning("Could not back up outdated config: %s", exc)
            config = self.get_default_config()
            self.save_json_config(config)
            return config

        config, updated = self._ensure_config_defaults(config)
        if updated:
            self.save_json_config(config)
        return config

    def save_json_config(self, config_data: Optional[Dict[str, Any]] = None):
        """Save configuration to JSON file"""
        if config_data is None:
            config_data = self.config_data
        try:
            os.makedirs(self.config_dir, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2)
            logger.debug("Configuration saved to JSON file")
        except OSError as e:
            logger.error("Failed to save JSON config: %s", e)

    def _ensure_config_defaults(self, config: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Ensure newly added keys exist in the provided config dict."""
        updated = False
        for section, defaults in _DEFAULT_CONFIG.items():
            if not isinstance(defaults, dict):
                continue
            current = config.get(section)
            if not isinstance(current, dict):
                config[section] = copy.deepcopy(defaults)
                updated = True
                continue
            for key, value in defaults.items():
                if key not in current:
                    current[key] = value
                    updated = True
        return config, updated

    def get_setting(self, key: str, default=None):
        """Get a setting value using a dotted key such as ``ssh.connection_timeout``"""
        value: Any = self.config_data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any):
        """Set a setting value and persist the JSON file"""
        keys = key.split('.')
        current = self.config_data
        for k in keys[:-1]:
            if k not in current or not isinstance(current[k], dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        self.save_json_config()
        logger.debug("Setting %s = %r", key, value)

    def get_ssh_config(self) -> Dict[str, Any]:
        """Get SSH configuration values coerced to their expected types."""

        defaults = _DEFAULT_CONFIG['ssh']
        int_keys = {'connection_timeout', 'connect_retries', 'health_check_interval'}
        bool_keys = {'auto_add_host_keys', 'debug_enabled'}

        config: Dict[str, Any] = {}
        for key, default_value in defaults.items():
            value = self.get_setting(f'ssh.{key}', default_value)
            if key in bool_keys:
                if isinstance(value, str):
                    value = value.strip().lower() in {'1', 'true', 'yes', 'on'}
                else:
                    value = bool(value)
            elif key in int_keys:
                try:
                    value = max(0, int(value))
                except (TypeError, ValueError):
                    value = default_value
            elif key == 'retry_backoff':
                try:
                    value = max(0.0, float(value))
                except (TypeError, ValueError):
                    value = default_value
            elif key == 'strict_host_key_checking':
                value = str(value or '').strip().lower()
            config[key] = value
        return config

    def get_session_options(self):
        """Build the transport options every new session is opened with."""
        from .session import SessionOptions

        known_hosts = os.path.join(get_ssh_dir(), 'known_hosts')
        return SessionOptions.from_config(self, known_hosts_path=known_hosts)

    def reset_to_defaults(self):
        """Reset all settings to defaults"""
        self.config_data = self.get_default_config()
        self.save_json_config()
        logger.info("Configuration reset to defaults")
