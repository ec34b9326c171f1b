"""
Configuration management for remarkable2notion.

Handles loading and managing configuration from YAML files and environment
variables. Precedence, highest first: values set at runtime (CLI options),
environment variables, the YAML file, built-in defaults. Secrets that are
still unset fall back to the system keyring.
"""

import copy
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.errors import ConfigError
from .secrets import SecretsManager

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


class Config:
    """Configuration manager for remarkable2notion."""

    DEFAULT_CONFIG = {
        'remarkable': {
            'backup_directory': 'remarkable_backup',
            'password': None,
            'executable': 'RemarkableSync',
        },
        'notion': {
            'token': None,
            'database_id': None,
        },
        'google': {
            'vision_api_key': None,
            'oauth_client_id': None,
            'oauth_client_secret': None,
            'drive_folder_id': None,
            'token_file': None,  # None means ~/.config/remarkable2notion/google_token.json
        },
        'processing': {
            'temp_directory': None,  # None means <system temp>/remarkable2notion
            'dpi': 150,
            'dry_run': False,
        },
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'file': None,  # None means console only
        },
    }

    ENV_MAPPINGS = {
        'REMARKABLE_BACKUP_DIR': ['remarkable', 'backup_directory'],
        'REMARKABLE_PASSWORD': ['remarkable', 'password'],
        'NOTION_TOKEN': ['notion', 'token'],
        'NOTION_DATABASE_ID': ['notion', 'database_id'],
        'GOOGLE_VISION_API_KEY': ['google', 'vision_api_key'],
        'GOOGLE_OAUTH_CLIENT_ID': ['google', 'oauth_client_id'],
        'GOOGLE_OAUTH_CLIENT_SECRET': ['google', 'oauth_client_secret'],
        'GOOGLE_DRIVE_FOLDER_ID': ['google', 'drive_folder_id'],
        'LOG_LEVEL': ['logging', 'level'],
        'REMARKABLE2NOTION_LOG_LEVEL': ['logging', 'level'],
        'REMARKABLE2NOTION_LOG_FILE': ['logging', 'file'],
    }

    # Settings that may come from the keyring when not configured elsewhere
    SECRET_KEYS = ('notion.token', 'google.vision_api_key', 'google.oauth_client_secret', 'remarkable.password')

    def __init__(self, config_path: Optional[str] = None,
                 secrets_manager: Optional[SecretsManager] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, looks for config in standard locations.
            secrets_manager: Keyring access for secret fallback
        """
        self.config_data = copy.deepcopy(self.DEFAULT_CONFIG)
        self.secrets = secrets_manager or SecretsManager()
        self.config_path = self._find_config_file(config_path)

        if self.config_path:
            self._load_config_file()
        else:
            logger.debug("No configuration file found, using defaults")

        # Override with environment variables
        self._load_env_variables()

        logger.debug(f"Configuration loaded from {self.config_path or 'defaults'}")

    def _find_config_file(self, config_path: Optional[str]) -> Optional[Path]:
        """Find the configuration file to use."""
        if config_path:
            path = Path(config_path)
            if path.exists():
                return path
            raise ConfigError(f"Specified config file not found: {config_path}")

        search_paths = [
            Path.cwd() / 'config.yaml',
            Path.cwd() / 'config' / 'config.yaml',
            Path.home() / '.config' / 'remarkable2notion' / 'config.yaml',
        ]

        for path in search_paths:
            if path.exists():
                logger.debug(f"Found configuration file: {path}")
                return path

        return None

    def _load_config_file(self):
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config file {self.config_path}: {e}") from e

        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")

        self.config_data = self._deep_merge(self.config_data, file_config)
        logger.debug(f"Configuration loaded from {self.config_path}")

    def _load_env_variables(self):
        """Load configuration from environment variables."""
        for env_var, config_path in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value:
                self._set_nested_value(self.config_data, config_path, value)
                logger.debug(f"Set config from env var {env_var}")

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, data: Dict, path: list, value: Any):
        """Set a nested value in a dictionary using a path list."""
        current = data
        for key in path[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]

        current[path[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'notion.database_id')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self.config_data

        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return default if current is None else current

    def set(self, key: str, value: Any):
        """Set configuration value using dot notation."""
        self._set_nested_value(self.config_data, key.split('.'), value)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section."""
        return self.get(section, {})

    def get_secret(self, key: str) -> Optional[str]:
        """Configured value for ``key``, falling back to the system keyring."""
        value = self.get(key)
        if value:
            return str(value)
        if key in self.SECRET_KEYS:
            return self.secrets.get_secret(key)
        return None

    def require(self, key: str, hint: str = '') -> str:
        """Like ``get_secret`` but raises ConfigError when the value is missing."""
        value = self.get_secret(key)
        if not value:
            message = f"{key} is required"
            raise ConfigError(f"{message}. {hint}" if hint else message)
        return value

    @property
    def backup_directory(self) -> Path:
        return Path(self.get('remarkable.backup_directory', 'remarkable_backup')).expanduser()

    @property
    def temp_directory(self) -> Path:
        configured = self.get('processing.temp_directory')
        if configured:
            return Path(configured).expanduser()
        return Path(tempfile.gettempdir()) / 'remarkable2notion'

    @property
    def dry_run(self) -> bool:
        return bool(self.get('processing.dry_run', False))

    @property
    def drive_enabled(self) -> bool:
        return bool(self.get('google.oauth_client_id') and self.get_secret('google.oauth_client_secret'))

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of issues.

        Returns:
            List of validation error messages
        """
        issues = []

        if not self.get_secret('notion.token'):
            issues.append("notion.token is required (NOTION_TOKEN or --notion-token)")
        if not self.get('notion.database_id'):
            issues.append("notion.database_id is required (NOTION_DATABASE_ID or --notion-database-id)")
        if not self.get_secret('google.vision_api_key'):
            issues.append("google.vision_api_key is required (GOOGLE_VISION_API_KEY)")

        if bool(self.get('google.oauth_client_id')) != bool(self.get_secret('google.oauth_client_secret')):
            issues.append("google.oauth_client_id and google.oauth_client_secret must be set together")

        log_level = str(self.get('logging.level', 'INFO')).upper()
        if log_level not in VALID_LOG_LEVELS:
            issues.append(f"Invalid logging level: {log_level}")

        dpi = self.get('processing.dpi')
        if not isinstance(dpi, int) or dpi <= 0:
            issues.append(f"processing.dpi must be a positive integer: {dpi}")

        return issues

    @staticmethod
    def create_example_config(output_path: str):
        """Create an example configuration file with comments."""
        example_config = """
# remarkable2notion configuration

# reMarkable export (RemarkableSync) settings
remarkable:
  # Where RemarkableSync writes its backup (PDF/ and Notebooks/)
  backup_directory: "remarkable_backup"
  # Tablet password, if any (prefer REMARKABLE_PASSWORD or the keyring)
  password: null
  executable: "RemarkableSync"

# Notion destination
notion:
  token: null  # Get from https://www.notion.so/my-integrations
  database_id: null

# Google services
google:
  vision_api_key: null  # Required for OCR
  # Optional: upload PDFs to Google Drive instead of linking them locally
  oauth_client_id: null
  oauth_client_secret: null
  drive_folder_id: null
  token_file: null

# Processing settings
processing:
  temp_directory: null
  dpi: 150
  dry_run: false

# Logging settings
logging:
  level: "INFO"  # DEBUG, INFO, WARNING, ERROR
  format: "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
  file: null  # null for console only, or path to log file
"""

        with open(output_path, 'w') as f:
            f.write(example_config.strip() + '\n')

        logger.info(f"Example configuration created at {output_path}")

    def __str__(self) -> str:
        return f"Config(path={self.config_path}, backup_dir={self.get('remarkable.backup_directory')})"

    def __repr__(self) -> str:
        return f"Config(config_path={self.config_path}, data_keys={list(self.config_data.keys())})"
