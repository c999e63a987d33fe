"""Resolve the database passphrase from the secret store or the browser."""

import logging
import webbrowser
from typing import Callable, Optional

from ..exceptions import CredentialError
from .callback_server import CallbackListener
from .secret_store import SecretStore

logger = logging.getLogger(__name__)


class PassphraseProvider:
    """Supply the shared database passphrase for a sync round.

    The stored passphrase is used when present. Otherwise a one-shot listener
    serves a password form, the browser is pointed at it, and the submitted
    value is stored for later rounds.
    """

    def __init__(
        self,
        store: SecretStore,
        secret_id: str = "database",
        host: str = "localhost",
        port: int = 3030,
        open_browser: Callable[[str], bool] = webbrowser.open,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.secret_id = secret_id
        self.host = host
        self.port = port
        self.open_browser = open_browser
        self.timeout = timeout

    def get_passphrase(self) -> str:
        passphrase = self.store.get_secret(self.secret_id)
        if passphrase:
            return passphrase

        logger.info("No stored passphrase, asking through the browser")
        passphrase = self.ask_interactively()
        self.store.set_secret(self.secret_id, passphrase)
        return passphrase

    def ask_interactively(self) -> str:
        """Serve the password form and block until it is submitted."""
        with CallbackListener(self.host, self.port) as listener:
            if not listener.rendezvous.delivered:
                form_url = f"{listener.url}/missing_pass"
                if not self.open_browser(form_url):
                    logger.warning(f"Could not open a browser, visit {form_url} to enter the passphrase")
            passphrase = listener.wait(timeout=self.timeout)

        if not passphrase:
            raise CredentialError("empty passphrase received")
        return passphrase
