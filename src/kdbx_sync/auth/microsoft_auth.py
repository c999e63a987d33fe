"""Microsoft Graph authentication handling."""

import logging
import time
import webbrowser
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import msal

from ..exceptions import CredentialError
from .callback_server import CallbackListener

logger = logging.getLogger(__name__)

GRAPH_SCOPES = ["https://graph.microsoft.com/Files.ReadWrite"]


class MicrosoftGraphAuth:
    """Handle authentication for Microsoft Graph API."""

    def __init__(
        self,
        app_id: str,
        tenant_id: Optional[str] = None,
        token_cache_path: Optional[Union[str, Path]] = None,
        host: str = "localhost",
        port: int = 3030,
        open_browser: Callable[[str], bool] = webbrowser.open,
        timeout: Optional[float] = None,
    ):
        """Initialize Microsoft Graph authentication.

        Args:
            app_id: Azure application (client) ID of a public client app
            tenant_id: Azure tenant ID (optional, defaults to common)
            token_cache_path: Where the msal token cache is persisted
            host: Host of the local callback listener
            port: Port of the local callback listener (must match the registered redirect URI)
            open_browser: Callable opening the authorization URL
            timeout: Seconds to wait for the browser callback (None waits indefinitely)
        """
        self.app_id = app_id
        self.tenant_id = tenant_id or "common"
        self.token_cache_path = Path(token_cache_path or Path.home() / ".kdbx_sync" / "msal_cache.json")
        self.token_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.host = host
        self.port = port
        self.open_browser = open_browser
        self.timeout = timeout
        self.scopes = list(GRAPH_SCOPES)

        self._access_token: Optional[str] = None
        self._token_expiry: Optional[float] = None  # Unix timestamp when token expires
        self._app: Optional[msal.PublicClientApplication] = None

    def _get_msal_app(self) -> msal.PublicClientApplication:
        """Get MSAL application instance."""
        if self._app is None:
            cache = msal.SerializableTokenCache()
            if self.token_cache_path.exists():
                cache.deserialize(self.token_cache_path.read_text(encoding='utf-8'))

            self._app = msal.PublicClientApplication(
                client_id=self.app_id,
                authority=f"https://login.microsoftonline.com/{self.tenant_id}",
                token_cache=cache
            )
        return self._app

    def _save_token_cache(self):
        """Save token cache to disk."""
        app = self._get_msal_app()
        if app.token_cache.has_state_changed:
            self.token_cache_path.write_text(app.token_cache.serialize(), encoding='utf-8')
            self.token_cache_path.chmod(0o600)

    def _accept(self, result: Dict) -> str:
        self._access_token = result["access_token"]
        expires_in = result.get("expires_in", 3600)
        self._token_expiry = time.time() + expires_in
        self._save_token_cache()
        logger.info(f"Obtained Microsoft Graph access token (expires in {expires_in} seconds)")
        return self._access_token

    def _authorize_interactively(self) -> Dict:
        app = self._get_msal_app()
        with CallbackListener(self.host, self.port) as listener:
            redirect_uri = f"{listener.url}/"
            auth_url = app.get_authorization_request_url(self.scopes, redirect_uri=redirect_uri)
            if not listener.rendezvous.delivered and not self.open_browser(auth_url):
                logger.warning(f"Could not open a browser, visit this URL to authorize: {auth_url}")
            code = listener.wait(timeout=self.timeout)

        return app.acquire_token_by_authorization_code(code, scopes=self.scopes, redirect_uri=redirect_uri)

    def authenticate(self) -> str:
        """Authenticate and get access token.

        Returns:
            Access token string

        Raises:
            CredentialError: If authentication fails
        """
        app = self._get_msal_app()

        # First, try to get token silently from cache
        accounts = app.get_accounts()
        if accounts:
            result = app.acquire_token_silent(self.scopes, account=accounts[0])
            if result and "access_token" in result:
                return self._accept(result)

        result = self._authorize_interactively()
        if "access_token" in result:
            return self._accept(result)

        error_msg = result.get("error_description", result.get("error", "Unknown authentication error"))
        raise CredentialError(f"Authentication failed: {error_msg}")

    def _is_token_expired(self) -> bool:
        """Check if the current access token is expired or expires within 5 minutes."""
        if self._access_token is None or self._token_expiry is None:
            return True
        return time.time() >= (self._token_expiry - 300)

    def get_access_token(self, force_refresh: bool = False) -> str:
        """Get current access token, refreshing it when expired.

        Args:
            force_refresh: Force token refresh even if current token seems valid

        Returns:
            Access token string
        """
        if force_refresh or self._is_token_expired():
            return self.authenticate()
        return self._access_token

    def get_auth_headers(self) -> Dict[str, str]:
        """Get authorization headers for API requests."""
        return {"Authorization": f"Bearer {self.get_access_token()}"}
