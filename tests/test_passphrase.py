"""Tests for passphrase resolution and the secret stores."""

import logging

import pytest
import requests
from keyring.errors import KeyringError

from kdbx_sync.auth import secret_store
from kdbx_sync.auth.passphrase import PassphraseProvider
from kdbx_sync.auth.secret_store import KeyringSecretStore, MemorySecretStore
from kdbx_sync.exceptions import CredentialError


class FormFiller:
    """Stands in for the browser: submits the form served by the listener."""

    def __init__(self, value, opened=True):
        self.value = value
        self.opened = opened
        self.urls = []

    def __call__(self, url):
        self.urls.append(url)
        submit_url = url.replace("/missing_pass", "/get_pass")
        requests.get(submit_url, params={"pass": self.value}, timeout=5)
        return self.opened


class TestPassphraseProvider:

    def test_stored_passphrase_is_used(self):
        browser = FormFiller("unused")
        provider = PassphraseProvider(MemorySecretStore({"database": "stored"}), open_browser=browser)

        assert provider.get_passphrase() == "stored"
        assert browser.urls == []

    def test_asks_through_browser_and_stores(self):
        store = MemorySecretStore()
        browser = FormFiller("typed")
        provider = PassphraseProvider(store, host="127.0.0.1", port=0, open_browser=browser, timeout=5)

        assert provider.get_passphrase() == "typed"
        assert store.get_secret("database") == "typed"
        assert browser.urls[0].endswith("/missing_pass")

    def test_browser_failure_is_logged(self, caplog):
        browser = FormFiller("typed", opened=False)
        provider = PassphraseProvider(MemorySecretStore(), host="127.0.0.1", port=0,
                                      open_browser=browser, timeout=5)

        with caplog.at_level(logging.WARNING, logger="kdbx_sync"):
            assert provider.get_passphrase() == "typed"
        assert "Could not open a browser" in caplog.text

    def test_empty_submission(self):
        provider = PassphraseProvider(MemorySecretStore(), host="127.0.0.1", port=0,
                                      open_browser=FormFiller(""), timeout=5)

        with pytest.raises(CredentialError):
            provider.get_passphrase()


class TestKeyringSecretStore:

    def test_get_and_set(self, monkeypatch):
        saved = {}
        monkeypatch.setattr(secret_store.keyring, "set_password",
                            lambda service, key, value: saved.__setitem__((service, key), value))
        monkeypatch.setattr(secret_store.keyring, "get_password",
                            lambda service, key: saved.get((service, key)))
        store = KeyringSecretStore("kdbx-sync-test")

        assert store.get_secret("database") is None
        store.set_secret("database", "pw")
        assert store.get_secret("database") == "pw"
        assert saved == {("kdbx-sync-test", "database"): "pw"}

    def test_keyring_failure(self, monkeypatch):
        def broken(service, key):
            raise KeyringError("locked")

        monkeypatch.setattr(secret_store.keyring, "get_password", broken)

        with pytest.raises(CredentialError, match="keychain"):
            KeyringSecretStore().get_secret("database")


def test_memory_store_treats_empty_as_missing():
    assert MemorySecretStore({"database": ""}).get_secret("database") is None
