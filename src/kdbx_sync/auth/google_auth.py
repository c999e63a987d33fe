"""Google OAuth credentials for the Drive backend.

The token file stores the user's access and refresh tokens and is created
automatically when the authorization flow completes for the first time. If
the scopes change, delete the token file.
"""

import json
import logging
import os
import webbrowser
from pathlib import Path
from typing import Callable, Optional, Union

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from ..exceptions import ConfigurationError, CredentialError
from .callback_server import CallbackListener

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive"]


class GoogleDriveAuth:
    """Load, refresh or interactively obtain Google Drive credentials."""

    def __init__(
        self,
        client_secrets_path: Union[str, Path],
        token_path: Union[str, Path] = "token.json",
        host: str = "localhost",
        port: int = 3030,
        open_browser: Callable[[str], bool] = webbrowser.open,
        timeout: Optional[float] = None,
    ):
        """Initialize Google authentication.

        Args:
            client_secrets_path: OAuth client secrets JSON downloaded from the cloud console
            token_path: Where the authorized user token is cached
            host: Host of the local callback listener
            port: Port of the local callback listener (must match the registered redirect URI)
            open_browser: Callable opening the authorization URL
            timeout: Seconds to wait for the browser callback (None waits indefinitely)
        """
        self.client_secrets_path = Path(client_secrets_path)
        self.token_path = Path(token_path)
        self.host = host
        self.port = port
        self.open_browser = open_browser
        self.timeout = timeout

    def get_credentials(self) -> Credentials:
        """Return valid credentials, refreshing or re-authorizing as needed."""
        creds = self._load_token()
        if creds and creds.valid:
            return creds

        if creds and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
                self._save_token(creds)
                return creds
            except RefreshError as e:
                logger.warning(f"Cached Google token could not be refreshed: {e}")

        creds = self._authorize_interactively()
        self._save_token(creds)
        return creds

    def _load_token(self) -> Optional[Credentials]:
        if not self.token_path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.token_path), SCOPES)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.token_path}: {e}")
            return None

    def _save_token(self, creds: Credentials) -> None:
        try:
            fd = os.open(self.token_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(creds.to_json())
        except OSError as e:
            raise CredentialError(f"can't cache oauth token: {e}", path=self.token_path) from e
        logger.info(f"Saved Google credentials to {self.token_path}")

    def _authorize_interactively(self) -> Credentials:
        if not self.client_secrets_path.exists():
            raise ConfigurationError("can't read client secret file", path=self.client_secrets_path)

        with CallbackListener(self.host, self.port) as listener:
            flow = Flow.from_client_secrets_file(
                str(self.client_secrets_path),
                scopes=SCOPES,
                redirect_uri=f"{listener.url}/",
            )
            auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")
            if not listener.rendezvous.delivered and not self.open_browser(auth_url):
                logger.warning(f"Could not open a browser, visit this URL to authorize: {auth_url}")
            code = listener.wait(timeout=self.timeout)

        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise CredentialError(f"can't retrieve token from web: {e}") from e
        return flow.credentials
