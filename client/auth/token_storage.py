"""
Credential storage for the Chat Auth Client.

This module provides the credential store implementations injected into the
authenticated request client: an in-memory store, the system keyring, and an
encrypted file used when no keyring is available.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from cryptography.fernet import Fernet, InvalidToken

from shared.exceptions import TokenStorageError, ErrorCode
from shared.interfaces import ICredentialStore

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "chat-auth-client"


def check_keyring_availability(service_name: str = DEFAULT_SERVICE_NAME) -> bool:
    """Check if a working system keyring backend is available."""
    try:
        test_key = f"{service_name}_test"
        keyring.set_password(service_name, test_key, "test")
        result = keyring.get_password(service_name, test_key)
        keyring.delete_password(service_name, test_key)
        return result == "test"
    except Exception as e:
        logger.debug(f"Keyring not available: {e}")
        return False


class MemoryCredentialStore(ICredentialStore):
    """Process-local store. Credentials are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._values)


class KeyringCredentialStore(ICredentialStore):
    """Store backed by the system keyring."""

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        self.service_name = service_name

    def get(self, key: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service_name, key)
        except KeyringError as e:
            logger.error(f"Failed to read {key} from keyring: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        try:
            keyring.set_password(self.service_name, key, value)
        except KeyringError as e:
            raise TokenStorageError(f"Failed to store {key} in keyring: {e}", cause=e)

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self.service_name, key)
        except PasswordDeleteError:
            logger.debug(f"No {key} in keyring to remove")
        except KeyringError as e:
            logger.warning(f"Failed to remove {key} from keyring: {e}")


class EncryptedFileCredentialStore(ICredentialStore):
    """
    Store that keeps all credentials in a single Fernet-encrypted JSON file.

    The encryption key lives in the system keyring when one is available,
    otherwise in a ``.key`` file next to the credentials with 0600 permissions.
    """

    def __init__(
        self,
        storage_path: Optional[Path] = None,
        service_name: str = DEFAULT_SERVICE_NAME,
        use_keyring: Optional[bool] = None
    ):
        self.service_name = service_name
        self.storage_path = Path(storage_path).expanduser() if storage_path else self._get_default_path()
        self.key_path = self.storage_path.with_suffix('.key')
        self.keyring_available = (
            check_keyring_availability(service_name) if use_keyring is None else use_keyring
        )

        self._encryption_key: Optional[bytes] = None

        logger.debug(f"Credential file store at {self.storage_path} (keyring: {self.keyring_available})")

    def _get_default_path(self) -> Path:
        return Path.home() / '.chat-client' / 'credentials.enc'

    def _get_encryption_key(self) -> bytes:
        """Get or create the encryption key."""
        if self._encryption_key:
            return self._encryption_key

        if self.keyring_available:
            try:
                stored_key = keyring.get_password(self.service_name, "encryption_key")
                if stored_key:
                    self._encryption_key = stored_key.encode()
                    return self._encryption_key
            except KeyringError as e:
                logger.warning(f"Failed to get encryption key from keyring: {e}")
        elif self.key_path.exists():
            self._encryption_key = self.key_path.read_bytes().strip()
            return self._encryption_key

        key = Fernet.generate_key()

        if self.keyring_available:
            try:
                keyring.set_password(self.service_name, "encryption_key", key.decode())
            except KeyringError as e:
                raise TokenStorageError(f"Failed to store encryption key in keyring: {e}", cause=e)
        else:
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            self.key_path.write_bytes(key)
            os.chmod(self.key_path, 0o600)

        self._encryption_key = key
        return key

    def _load_all(self) -> Dict[str, str]:
        if not self.storage_path.exists():
            return {}

        try:
            fernet = Fernet(self._get_encryption_key())
            decrypted = fernet.decrypt(self.storage_path.read_bytes()).decode()
            data = json.loads(decrypted)
        except (InvalidToken, ValueError, OSError) as e:
            logger.warning(f"Failed to read credential file, treating as empty: {e}")
            return {}

        return data if isinstance(data, dict) else {}

    def _save_all(self, values: Dict[str, str]) -> None:
        if not values:
            self._remove_file()
            return

        try:
            fernet = Fernet(self._get_encryption_key())
            encrypted = fernet.encrypt(json.dumps(values).encode())

            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.storage_path.with_suffix('.tmp')
            tmp_path.write_bytes(encrypted)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.storage_path)
        except OSError as e:
            raise TokenStorageError(
                f"Failed to write credential file: {e}",
                error_code=ErrorCode.STORAGE_WRITE_FAILED,
                cause=e
            )

    def _remove_file(self) -> None:
        try:
            self.storage_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise TokenStorageError(f"Failed to remove credential file: {e}", cause=e)

    def get(self, key: str) -> Optional[str]:
        return self._load_all().get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def update(self, values: Dict[str, str]) -> None:
        all_values = self._load_all()
        all_values.update(values)
        self._save_all(all_values)

    def delete(self, key: str) -> None:
        all_values = self._load_all()
        if key in all_values:
            del all_values[key]
            self._save_all(all_values)

    def clear(self) -> None:
        self._remove_file()
