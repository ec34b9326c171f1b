"""
Google OAuth2 for the Drive integration.

Tokens are persisted as JSON (``access_token``, ``refresh_token`` and an
optional ``expires_at`` in epoch seconds) with owner-only permissions. The
first run has no token on disk and performs the installed-app authorization
code flow: open the consent page in a browser, wait for a single redirect on
a local port, check the ``state`` value and exchange the code.
"""

import json
import logging
import os
import secrets
import time
import webbrowser
from dataclasses import asdict, dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import parse_qs, urlparse

import httpx

from ..core.errors import AuthError

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"

CALLBACK_HOST = "127.0.0.1"
CALLBACK_PORT = 8085

# Refresh proactively when less than this many seconds remain
EXPIRY_MARGIN_SECONDS = 300

DEFAULT_TOKEN_FILE = Path.home() / '.config' / 'remarkable2notion' / 'google_token.json'

SUCCESS_PAGE = (
    "<html><body><h1>✅ Authorization successful!</h1>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)
FAILURE_PAGE = "<html><body><h1>Authorization failed</h1><p>Return to the terminal for details.</p></body></html>"


@dataclass
class StoredToken:
    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.expires_at is None:
            del data['expires_at']
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoredToken':
        return cls(
            access_token=data['access_token'],
            refresh_token=data['refresh_token'],
            expires_at=data.get('expires_at'),
        )

    def expires_within(self, seconds: int, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at - now < seconds


class _CallbackHandler(BaseHTTPRequestHandler):
    """Captures the query string of the single OAuth redirect."""

    def do_GET(self):
        params = parse_qs(urlparse(self.path).query)
        self.server.callback_params = {key: values[0] for key, values in params.items() if values}

        ok = 'code' in self.server.callback_params
        body = (SUCCESS_PAGE if ok else FAILURE_PAGE).encode('utf-8')
        self.send_response(200 if ok else 400)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug(f"OAuth callback: {format % args}")


class GoogleOAuthClient:
    """Obtains, refreshes and persists Google OAuth tokens."""

    def __init__(self, client_id: str, client_secret: str,
                 token_file: Optional[Union[str, Path]] = None,
                 http_client: Optional[httpx.Client] = None,
                 callback_port: int = CALLBACK_PORT):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_file = Path(token_file) if token_file else DEFAULT_TOKEN_FILE
        self.http = http_client or httpx.Client(timeout=30.0)
        self.callback_port = callback_port

        self.token_file.parent.mkdir(parents=True, exist_ok=True)

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.callback_port}"

    # ---- persistence ----

    def load_token(self) -> Optional[StoredToken]:
        """Return the persisted token, or None when there is none yet."""
        if not self.token_file.exists():
            return None

        try:
            with open(self.token_file, 'r', encoding='utf-8') as f:
                return StoredToken.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise AuthError(f"Could not read token file {self.token_file}: {e}") from e

    def save_token(self, token: StoredToken) -> None:
        with open(self.token_file, 'w', encoding='utf-8') as f:
            json.dump(token.to_dict(), f, indent=2)

        if os.name == 'posix':
            os.chmod(self.token_file, 0o600)

        logger.debug(f"Token saved to {self.token_file}")

    # ---- token endpoint ----

    def _token_request(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        payload = {'client_id': self.client_id, 'client_secret': self.client_secret, **data}
        try:
            response = self.http.post(TOKEN_URL, data=payload)
        except httpx.HTTPError as e:
            raise AuthError(f"{action} failed: {e}") from e

        if not response.is_success:
            raise AuthError(f"{action} failed: {response.status_code} - {response.text}")

        try:
            result = response.json()
        except ValueError as e:
            raise AuthError(f"{action} failed: invalid response: {e}") from e

        if not result.get('access_token'):
            raise AuthError(f"{action} failed: no access token in response")
        return result

    @staticmethod
    def _expires_at(result: Dict[str, Any]) -> Optional[int]:
        expires_in = result.get('expires_in')
        if expires_in is None:
            return None
        return int(time.time()) + int(expires_in)

    def exchange_code(self, code: str) -> StoredToken:
        result = self._token_request(
            {'code': code, 'grant_type': 'authorization_code', 'redirect_uri': self.redirect_uri},
            "Token exchange"
        )

        refresh_token = result.get('refresh_token')
        if not refresh_token:
            raise AuthError("No refresh token received")

        token = StoredToken(
            access_token=result['access_token'],
            refresh_token=refresh_token,
            expires_at=self._expires_at(result),
        )
        self.save_token(token)
        return token

    def refresh_token(self, refresh_token: str) -> StoredToken:
        """Exchange a refresh token for a new access token and persist it."""
        logger.debug("Refreshing access token...")

        result = self._token_request(
            {'refresh_token': refresh_token, 'grant_type': 'refresh_token'},
            "Token refresh"
        )

        # Google usually omits the refresh token on refresh; keep the old one
        token = StoredToken(
            access_token=result['access_token'],
            refresh_token=result.get('refresh_token') or refresh_token,
            expires_at=self._expires_at(result),
        )
        self.save_token(token)
        logger.debug("Access token refreshed successfully")
        return token

    def get_valid_token(self) -> StoredToken:
        """Stored token, refreshed when close to expiry; authorizes when none is stored."""
        token = self.load_token()
        if token is None:
            logger.info("No token found, starting authorization flow...")
            return self.authorize()

        if token.expires_within(EXPIRY_MARGIN_SECONDS):
            logger.info("Access token expired, refreshing...")
            return self.refresh_token(token.refresh_token)

        return token

    # ---- authorization code flow ----

    def authorization_url(self, state: str) -> str:
        params = {
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'response_type': 'code',
            'scope': DRIVE_FILE_SCOPE,
            'access_type': 'offline',
            'prompt': 'consent',
            'state': state,
        }
        return str(httpx.URL(AUTH_URL, params=params))

    def authorize(self) -> StoredToken:
        """Interactive one-time bootstrap; blocks until the browser redirects back."""
        state = secrets.token_urlsafe(32)
        auth_url = self.authorization_url(state)

        logger.info("=" * 70)
        logger.info("GOOGLE DRIVE OAUTH2 AUTHENTICATION")
        logger.info("=" * 70)
        logger.info("Please visit this URL to authorize the application:")
        logger.info(auth_url)
        logger.info("Waiting for authorization...")

        try:
            opened = webbrowser.open(auth_url)
        except webbrowser.Error as e:
            logger.info(f"Could not open browser automatically: {e}")
            opened = True
        if not opened:
            logger.info("Please open the URL manually in your browser.")

        params = self.receive_callback()
        code, _ = self.validate_callback(params, state)

        token = self.exchange_code(code)
        logger.info("✅ Authentication successful!")
        logger.info(f"Token saved to {self.token_file}")
        return token

    def receive_callback(self) -> Dict[str, str]:
        """Serve exactly one request on the callback port and return its query parameters."""
        try:
            server = HTTPServer((CALLBACK_HOST, self.callback_port), _CallbackHandler)
        except OSError as e:
            raise AuthError(f"Failed to start callback server: {e}") from e

        server.callback_params = {}
        try:
            server.handle_request()
        finally:
            server.server_close()
        return server.callback_params

    @staticmethod
    def validate_callback(params: Dict[str, str], expected_state: str) -> Tuple[str, str]:
        """Return (code, state) from the redirect, raising AuthError when it is unusable."""
        if 'error' in params:
            raise AuthError(f"Authorization denied: {params['error']}")

        code = params.get('code')
        if not code:
            raise AuthError("No authorization code in callback")

        state = params.get('state')
        if not state:
            raise AuthError("No state in callback")

        if not secrets.compare_digest(state, expected_state):
            raise AuthError("CSRF token mismatch")

        return code, state
