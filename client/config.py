"""
Configuration Management for the Chat Auth Client.

This module handles client configuration including the backend URL, request
timeout, endpoint paths, credential storage and logging, with support for
configuration files and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from configparser import ConfigParser, Error as ConfigParserError

from shared.exceptions import ConfigurationError, ErrorCode
from shared.interfaces import IConfigurationManager, ICredentialStore

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ('memory', 'keyring', 'file')

DEFAULT_PATHS = {
    'login': '/api/auth/login',
    'signup': '/api/auth/signup',
    'refresh': '/auth/refresh',
    'logout': '/auth/logout',
    'me': '/auth/me',
    'validate': '/auth/validate',
    'change_password': '/auth/change-password',
    'check_email': '/api/auth/check-email',
}


class ClientConfiguration(IConfigurationManager):
    """
    Configuration manager for the Chat Auth Client.

    Supports configuration from:
    1. Overrides, typically command line arguments (highest priority)
    2. Environment variables
    3. Configuration file
    4. Default values (lowest priority)
    """

    def __init__(self, config_file: Optional[str] = None):
        self._config_file = config_file or self._get_default_config_path()
        self._config_data: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}

        self._load_configuration()

    def _get_default_config_path(self) -> str:
        return str(Path.home() / '.chat-client' / 'client.conf')

    def _load_configuration(self) -> None:
        """Load configuration from file and environment variables."""
        if os.path.exists(self._config_file):
            self._load_from_file()
            logger.info(f"Configuration loaded from: {self._config_file}")
        else:
            logger.debug(f"Configuration file not found: {self._config_file}")

        self._load_from_environment()
        self._set_defaults()

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        config = ConfigParser()
        try:
            config.read(self._config_file)
        except ConfigParserError as e:
            raise ConfigurationError(
                f"Invalid configuration file {self._config_file}: {e}",
                error_code=ErrorCode.CONFIG_INVALID_FORMAT,
                cause=e
            )

        for section_name in config.sections():
            section_data = {}
            for key, value in config[section_name].items():
                # Try to parse as JSON for numbers, booleans and lists
                try:
                    section_data[key] = json.loads(value)
                except (json.JSONDecodeError, ValueError):
                    section_data[key] = value

            self._config_data[section_name] = section_data

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        env_mappings = {
            'CHAT_API_URL': ('server', 'url'),
            'CHAT_API_TIMEOUT': ('server', 'timeout'),
            'CHAT_API_VERIFY_SSL': ('server', 'verify_ssl'),
            'CHAT_TOKEN_STORAGE': ('storage', 'backend'),
            'CHAT_TOKEN_PATH': ('storage', 'path'),
            'CHAT_LOG_LEVEL': ('logging', 'level'),
            'CHAT_LOG_FILE': ('logging', 'file'),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is None:
                continue

            if section not in self._config_data:
                self._config_data[section] = {}

            if value.lower() in ('true', 'false'):
                self._config_data[section][key] = value.lower() == 'true'
            elif value.isdigit():
                self._config_data[section][key] = int(value)
            else:
                self._config_data[section][key] = value

    def _set_defaults(self) -> None:
        """Set default configuration values."""
        defaults = {
            'server': {
                'url': 'http://localhost:8080',
                'timeout': 10.0,
                'verify_ssl': True
            },
            'paths': dict(DEFAULT_PATHS),
            'storage': {
                'backend': 'file',
                'path': str(Path.home() / '.chat-client' / 'credentials.enc'),
                'service_name': 'chat-auth-client'
            },
            'logging': {
                'level': 'INFO',
                'format': 'standard',
                'file': None
            }
        }

        for section, section_defaults in defaults.items():
            if section not in self._config_data:
                self._config_data[section] = {}

            for key, default_value in section_defaults.items():
                if key not in self._config_data[section]:
                    self._config_data[section][key] = default_value

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in self._overrides:
            return self._overrides[key]

        if '.' not in key:
            return self._config_data.get(key, default)

        section, config_key = key.split('.', 1)
        return self._config_data.get(section, {}).get(config_key, default)

    def set_config(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            value: Value to set
        """
        if '.' not in key:
            self._config_data[key] = value
            return

        section, config_key = key.split('.', 1)
        self._config_data.setdefault(section, {})[config_key] = value

    def set_override(self, key: str, value: Any) -> None:
        """
        Set configuration override (highest priority).

        Args:
            key: Configuration key in format 'section.key'
            value: Override value
        """
        self._overrides[key] = value

    def save_configuration(self) -> None:
        """Save current configuration to file."""
        config = ConfigParser()

        for section_name, section_data in self._config_data.items():
            config.add_section(section_name)
            for key, value in section_data.items():
                if value is None:
                    continue
                if isinstance(value, (dict, list, bool)):
                    config.set(section_name, key, json.dumps(value))
                else:
                    config.set(section_name, key, str(value))

        config_path = Path(self._config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_file, 'w') as f:
            config.write(f)

        logger.info(f"Configuration saved to: {self._config_file}")

    def get_config_file_path(self) -> str:
        return self._config_file

    def get_server_url(self) -> str:
        return str(self.get_config('server.url')).rstrip('/')

    def get_server_timeout(self) -> float:
        """Get request timeout in seconds."""
        value = self.get_config('server.timeout', 10.0)
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid timeout: {value!r}", config_key='server.timeout')
        if timeout <= 0:
            raise ConfigurationError(f"Timeout must be positive: {timeout}", config_key='server.timeout')
        return timeout

    def get_verify_ssl(self) -> bool:
        return bool(self.get_config('server.verify_ssl', True))

    def get_paths(self) -> Dict[str, str]:
        """Get backend endpoint paths, keyed by operation."""
        paths = dict(DEFAULT_PATHS)
        paths.update(self._config_data.get('paths', {}))
        return paths

    def get_storage_backend(self) -> str:
        backend = str(self.get_config('storage.backend', 'file')).lower()
        if backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend {backend!r}; expected one of {', '.join(STORAGE_BACKENDS)}",
                config_key='storage.backend'
            )
        return backend

    def get_storage_path(self) -> Path:
        return Path(self.get_config('storage.path')).expanduser()

    def get_service_name(self) -> str:
        return self.get_config('storage.service_name', 'chat-auth-client')

    def get_log_level(self) -> str:
        return str(self.get_config('logging.level', 'INFO')).upper()

    def get_log_format(self) -> str:
        return str(self.get_config('logging.format', 'standard')).lower()

    def get_log_file(self) -> Optional[str]:
        return self.get_config('logging.file')


def create_credential_store(config: ClientConfiguration) -> ICredentialStore:
    """Build the credential store selected by the configuration."""
    from client.auth.token_storage import (
        MemoryCredentialStore, KeyringCredentialStore, EncryptedFileCredentialStore
    )

    backend = config.get_storage_backend()

    if backend == 'memory':
        return MemoryCredentialStore()
    if backend == 'keyring':
        return KeyringCredentialStore(service_name=config.get_service_name())
    return EncryptedFileCredentialStore(
        storage_path=config.get_storage_path(),
        service_name=config.get_service_name()
    )
