"""Passphrase and cloud provider authentication."""

from .callback_server import CallbackListener, Rendezvous
from .passphrase import PassphraseProvider
from .secret_store import KeyringSecretStore, MemorySecretStore, SecretStore

__all__ = [
    "CallbackListener",
    "KeyringSecretStore",
    "MemorySecretStore",
    "PassphraseProvider",
    "Rendezvous",
    "SecretStore",
]
