"""
Error types for remarkable2notion.

Every failure the sync engine knows how to classify is raised as one of the
subclasses below, so callers can catch ``Remarkable2NotionError`` at a
boundary and still tell a setup problem from a per-notebook one.
"""

from typing import Optional


class Remarkable2NotionError(Exception):
    """Base class for all remarkable2notion errors."""


class ExportToolError(Remarkable2NotionError):
    """RemarkableSync is missing, or exited non-zero without a success marker."""


class ExtractionError(Remarkable2NotionError):
    """PDF rasterization or OCR provider failure."""


class RemoteApiError(Remarkable2NotionError):
    """Non-2xx response from Notion, Google Drive or Google Vision."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AuthError(Remarkable2NotionError):
    """OAuth token exchange/refresh failure or an invalid callback."""


class ConfigError(Remarkable2NotionError):
    """A required setting or credential is missing."""
