"""
Utilities module for remarkable2notion.

Configuration loading and keyring-backed secrets shared by the CLI and the sync engine.
"""

from .config import Config
from .secrets import SecretsManager

__all__ = ['Config', 'SecretsManager']
