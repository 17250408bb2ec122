"""Configuration management using XDG Base Directory Specification.

This module provides centralized configuration for the client and the
proxy server following Linux standards for config, cache, and data
directories.
"""

import configparser
import os
from pathlib import Path
from typing import Optional

from cloudplayer.exceptions import ConfigurationError


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/cloudplayer/ (or XDG_CONFIG_HOME)
    - Cache: ~/.cache/cloudplayer/ (or XDG_CACHE_HOME)
    - Data: ~/.local/share/cloudplayer/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        """
        Initialize configuration manager.

        Sets up XDG Base Directory paths and loads or creates configuration.
        """
        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.cache_home = Path(os.getenv('XDG_CACHE_HOME', Path.home() / '.cache'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        self.app_name = 'cloudplayer'
        self.config_dir = self.config_home / self.app_name
        self.cache_dir = self.cache_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        # Tokens and URLs may contain '%'
        self.config = configparser.ConfigParser(interpolation=None)

        self._load_config()

        Config._instance = self

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        self._apply_defaults()
        if self.config_file.exists():
            try:
                self.config.read(self.config_file)
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid config file {self.config_file}: {e}") from e
        else:
            self.save()

    def _apply_defaults(self) -> None:
        """Populate sensible defaults; values from the file override them."""
        self.config['proxy'] = {
            'url': 'http://127.0.0.1:8787',
            'timeout': '30',
        }

        self.config['server'] = {
            'host': '127.0.0.1',
            'port': '8787',
            'storage_root': str(self.data_dir / 'storage'),
            'auth_token': '',
        }

        self.config['audio'] = {
            'volume': '1.0',
        }

        self.config['playback'] = {
            'repeat': 'off',  # off, track, queue
        }

    def save(self) -> None:
        """
        Save configuration to file.

        Writes current configuration state to the config file.
        """
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from cloudplayer.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, value)
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        return self.config.getboolean(section, key, fallback=fallback)

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        return self.config.getint(section, key, fallback=fallback)

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        return self.config.getfloat(section, key, fallback=fallback)

    def get_path(self, section: str, key: str, fallback: Optional[Path] = None) -> Optional[Path]:
        """Get a path configuration value."""
        value = self.get(section, key)
        if value:
            return Path(value).expanduser()
        return fallback

    # Convenience properties
    @property
    def proxy_url(self) -> str:
        """Base URL of the byte-range proxy; CLOUDPLAYER_PROXY_URL wins."""
        url = os.getenv('CLOUDPLAYER_PROXY_URL') or self.get('proxy', 'url', '')
        return url.rstrip('/')

    @property
    def request_timeout(self) -> float:
        """Total timeout for a single proxy request, in seconds."""
        return self.get_float('proxy', 'timeout', 30.0)

    @property
    def server_auth_token(self) -> str:
        """Shared secret the proxy expects in X-Auth-Token."""
        return os.getenv('CLOUDPLAYER_AUTH_TOKEN') or self.get('server', 'auth_token', '')

    @property
    def storage_root(self) -> Path:
        """Backing directory served by the proxy."""
        return self.get_path('server', 'storage_root', self.data_dir / 'storage')

    @property
    def credential_file(self) -> Path:
        """File holding a remembered client credential."""
        return self.config_dir / 'credential'

    @property
    def stream_dir(self) -> Path:
        """Directory for streamed audio resources of the current session."""
        stream_dir = self.cache_dir / 'stream'
        stream_dir.mkdir(parents=True, exist_ok=True)
        return stream_dir

    @property
    def log_dir(self) -> Path:
        """Get log directory."""
        log_dir = self.data_dir / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir


def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
