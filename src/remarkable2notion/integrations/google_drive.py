"""
Google Drive upload for notebook PDFs.

Uploaded PDFs are shared "anyone with the link" and the direct-view URL is
stored on the notebook's Notion page. Access tokens expire during long runs,
so every upload goes through a guard that refreshes the token once on a 401
and retries the upload once.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional, Union

import httpx

from ..core.errors import AuthError, RemoteApiError
from .google_oauth import GoogleOAuthClient

logger = logging.getLogger(__name__)

UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files?uploadType=multipart"
FILES_URL = "https://www.googleapis.com/drive/v3/files"
VIEW_URL = "https://drive.google.com/uc?export=view&id={file_id}"

UNAUTHORIZED_MARKER = "401"


class TokenCell:
    """Single access-token slot; readers see the old or the new token, never a mix."""

    def __init__(self, token: str):
        self._lock = threading.Lock()
        self._token = token

    def get(self) -> str:
        with self._lock:
            return self._token

    def set(self, token: str) -> None:
        with self._lock:
            self._token = token


def is_unauthorized(error: Exception) -> bool:
    return UNAUTHORIZED_MARKER in str(error)


class GoogleDriveClient:
    """Uploads files to Google Drive with the stored OAuth token."""

    def __init__(self, oauth_client: GoogleOAuthClient, folder_id: Optional[str] = None,
                 access_token: Optional[str] = None,
                 http_client: Optional[httpx.Client] = None,
                 timeout: float = 120.0):
        """
        Initialize the Drive client.

        Args:
            oauth_client: Token store used for the initial token and for refreshes
            folder_id: Optional Drive folder uploads are placed in
            access_token: Initial access token (default: ``oauth_client.get_valid_token()``)
            http_client: Optional preconfigured httpx client
            timeout: Request timeout in seconds
        """
        self.oauth_client = oauth_client
        self.folder_id = folder_id
        if access_token is None:
            access_token = oauth_client.get_valid_token().access_token
        self.access_token = TokenCell(access_token)
        self.http = http_client or httpx.Client(timeout=timeout)

    def _auth_headers(self):
        return {"Authorization": f"Bearer {self.access_token.get()}"}

    def upload_pdf(self, pdf_path: Union[str, Path], notebook_name: str) -> str:
        """Upload a notebook PDF and return its public direct-view URL."""
        logger.debug(f"Uploading PDF to Google Drive: {notebook_name}")
        return self.upload_file(pdf_path, f"{notebook_name}.pdf", "application/pdf")

    def upload_file(self, file_path: Union[str, Path], filename: str, mime_type: str) -> str:
        """
        Upload with a single refresh-and-retry on an authorization failure.

        Any other failure, or a failure of the retried upload, propagates.
        """
        try:
            return self._upload_file_internal(file_path, filename, mime_type)
        except RemoteApiError as e:
            if not is_unauthorized(e):
                raise
            self._refresh_access_token()

        logger.debug("Retrying upload with refreshed token...")
        return self._upload_file_internal(file_path, filename, mime_type)

    def _refresh_access_token(self) -> None:
        logger.warning("Google Drive token expired, attempting automatic refresh...")

        stored_token = self.oauth_client.load_token()
        if stored_token is None:
            raise AuthError("No stored token found")

        new_token = self.oauth_client.refresh_token(stored_token.refresh_token)
        self.access_token.set(new_token.access_token)
        logger.debug("Token refreshed successfully")

    def _upload_file_internal(self, file_path: Union[str, Path], filename: str, mime_type: str) -> str:
        file_bytes = Path(file_path).read_bytes()

        metadata = {"name": filename, "mimeType": mime_type}
        if self.folder_id:
            metadata["parents"] = [self.folder_id]

        files = [
            ("metadata", ("metadata.json", json.dumps(metadata), "application/json; charset=UTF-8")),
            ("file", (filename, file_bytes, mime_type)),
        ]

        try:
            response = self.http.post(UPLOAD_URL, headers=self._auth_headers(), files=files)
        except httpx.HTTPError as e:
            raise RemoteApiError(f"Google Drive upload failed: {e}") from e

        if not response.is_success:
            raise RemoteApiError(
                f"Google Drive upload failed: {response.status_code} - {response.text}",
                status_code=response.status_code, body=response.text
            )

        file_id = response.json().get("id")
        if not file_id:
            raise RemoteApiError("No file ID in Google Drive response")

        logger.debug(f"File uploaded to Google Drive with ID: {file_id}")

        share_url = self.make_file_public(file_id)
        logger.debug(f"File uploaded to Google Drive: {share_url}")
        return share_url

    def make_file_public(self, file_id: str) -> str:
        try:
            response = self.http.post(
                f"{FILES_URL}/{file_id}/permissions",
                headers=self._auth_headers(),
                json={"role": "reader", "type": "anyone"}
            )
        except httpx.HTTPError as e:
            raise RemoteApiError(f"Failed to make file public: {e}") from e

        if not response.is_success:
            raise RemoteApiError(
                f"Failed to make file public: {response.status_code} - {response.text}",
                status_code=response.status_code, body=response.text
            )

        return VIEW_URL.format(file_id=file_id)
