"""Configuration management for the vault CLI."""

import json
import os
from pathlib import Path
from typing import Optional

from common.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.vault' / 'config.json'


class Config:
    """CLI settings read from a JSON file, with environment defaults."""

    DEFAULT_CONFIG = {
        "server_url": os.environ.get("VAULT_SERVER_URL", "http://localhost:5000"),
        "timeout": 30,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (defaults to ~/.vault/config.json)
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, falling back to defaults.

        A missing file is not an error. An unreadable or corrupt file is
        logged and ignored.

        Returns:
            Configuration dictionary
        """
        config = self.DEFAULT_CONFIG.copy()
        if not self.config_path.exists():
            return config

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable config file {self.config_path}: {e}")
            return config

        if isinstance(data, dict):
            config.update(data)
        return config

    def save(self) -> None:
        """Save current configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=2)

    def set_server_url(self, url: str) -> None:
        self.data['server_url'] = url

    def get_base_url(self) -> str:
        """
        Get server base URL.

        Returns:
            Base URL string (e.g., "http://localhost:5000")
        """
        return self.data.get('server_url', self.DEFAULT_CONFIG['server_url']).rstrip('/')

    def get_timeout(self) -> int:
        return self.data.get('timeout', 30)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }
