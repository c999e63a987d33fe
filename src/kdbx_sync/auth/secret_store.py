"""Secret store capability for the database passphrase."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import keyring
from keyring.errors import KeyringError

from ..exceptions import CredentialError

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """Get and set secrets by id."""

    @abstractmethod
    def get_secret(self, secret_id: str) -> Optional[str]:
        """Return the stored secret, or None when nothing is stored."""

    @abstractmethod
    def set_secret(self, secret_id: str, value: str) -> None:
        """Store a secret, replacing any previous value."""


class KeyringSecretStore(SecretStore):
    """Secrets kept in the operating system keychain via ``keyring``."""

    def __init__(self, service: str = "kdbx-sync"):
        self.service = service

    def get_secret(self, secret_id: str) -> Optional[str]:
        try:
            value = keyring.get_password(self.service, secret_id)
        except KeyringError as e:
            raise CredentialError(f"can't get password from keychain: {e}") from e
        if not value:
            return None
        logger.debug(f"Found secret {secret_id} in keyring service {self.service}")
        return value

    def set_secret(self, secret_id: str, value: str) -> None:
        try:
            keyring.set_password(self.service, secret_id, value)
        except KeyringError as e:
            raise CredentialError(f"can't add password to the keychain: {e}") from e
        logger.info(f"Secret {secret_id} stored in keyring service {self.service}")


class MemorySecretStore(SecretStore):
    """Process-local store; nothing survives the run."""

    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        self._secrets: Dict[str, str] = dict(secrets or {})

    def get_secret(self, secret_id: str) -> Optional[str]:
        return self._secrets.get(secret_id) or None

    def set_secret(self, secret_id: str, value: str) -> None:
        self._secrets[secret_id] = value
