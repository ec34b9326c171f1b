"""
Secure secrets management for remarkable2notion.

API tokens can live in the system keyring instead of plain-text config or
``.env`` files. Lookups fall back to environment variables.
"""

import logging
import os
from typing import Dict, Optional

import keyring
import keyring.errors

logger = logging.getLogger(__name__)

# Application identifier for keyring
APP_NAME = "remarkable2notion"

# Secret keys the sync knows about, with the environment variable each maps to
KNOWN_SECRETS = {
    'notion.token': 'NOTION_TOKEN',
    'google.vision_api_key': 'GOOGLE_VISION_API_KEY',
    'google.oauth_client_secret': 'GOOGLE_OAUTH_CLIENT_SECRET',
    'remarkable.password': 'REMARKABLE_PASSWORD',
}


class SecretsManager:
    """
    Secrets stored in the system keyring with environment-variable fallback.

    Keyring backends are platform dependent and may be missing entirely on
    headless machines; any keyring failure is logged and treated as "not
    stored".
    """

    def __init__(self, app_name: str = APP_NAME):
        self.app_name = app_name
        self.logger = logging.getLogger(f"{__name__}.SecretsManager")

    def get_secret(self, key: str) -> Optional[str]:
        """
        Get a secret value.

        Tries in order:
        1. System keyring
        2. Environment variable
        3. Returns None
        """
        try:
            value = keyring.get_password(self.app_name, key)
        except keyring.errors.KeyringError as e:
            self.logger.debug(f"Keyring unavailable for '{key}': {e}")
            value = None

        if value:
            self.logger.debug(f"Retrieved secret '{key}' from keyring")
            return value

        env_key = self.key_to_env_var(key)
        value = os.getenv(env_key)
        if value:
            self.logger.debug(f"Retrieved secret '{key}' from environment variable '{env_key}'")
            return value

        self.logger.debug(f"Secret '{key}' not found")
        return None

    def set_secret(self, key: str, value: str) -> bool:
        """Store a secret in the keyring. Returns False when the keyring refuses it."""
        try:
            keyring.set_password(self.app_name, key, value)
        except keyring.errors.KeyringError as e:
            self.logger.error(f"Error storing secret in keyring: {e}")
            return False

        self.logger.info(f"Secret '{key}' stored in keyring")
        return True

    def delete_secret(self, key: str) -> bool:
        try:
            keyring.delete_password(self.app_name, key)
        except keyring.errors.PasswordDeleteError:
            self.logger.warning(f"Secret '{key}' is not stored in the keyring")
            return False
        except keyring.errors.KeyringError as e:
            self.logger.warning(f"Error deleting secret from keyring: {e}")
            return False

        self.logger.info(f"Secret '{key}' deleted from keyring")
        return True

    def list_stored_secrets(self) -> Dict[str, bool]:
        """Which known secrets resolve to a value (keys only, never values)."""
        return {key: bool(self.get_secret(key)) for key in KNOWN_SECRETS}

    @staticmethod
    def key_to_env_var(key: str) -> str:
        """'notion.token' -> 'NOTION_TOKEN'"""
        return KNOWN_SECRETS.get(key, key.replace('.', '_').upper())

    def get_keyring_backend(self) -> str:
        try:
            backend = keyring.get_keyring()
        except keyring.errors.KeyringError:
            return "Unknown or unavailable"
        return f"{backend.__class__.__module__}.{backend.__class__.__name__}"
