"""Settings: configs/config.yaml under the PanelBase base directory"""

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from panelbase.core.storage import paths
from panelbase.core.utils.idgen import DEFAULT_ALPHABET, DEFAULT_LENGTH

logger = logging.getLogger(__name__)

CONFIG_VERSION = "v1"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# Registered (non-privileged, non-ephemeral) port range
MIN_PORT = 1024
MAX_PORT = 49151


class ConfigError(Exception):
    """Raised when config.yaml exists but cannot be read or parsed"""
    pass


def validate_port(port: Any) -> int:
    """Return ``port`` if it is in range, otherwise a random port in range"""
    if isinstance(port, int) and not isinstance(port, bool) and MIN_PORT <= port <= MAX_PORT:
        return port
    replacement = random.randint(MIN_PORT, MAX_PORT)
    logger.warning(
        f"Configured port {port!r} is outside {MIN_PORT}-{MAX_PORT}, using random port {replacement}"
    )
    return replacement


@dataclass
class Settings:
    """Settings: global configuration"""

    version: str = CONFIG_VERSION
    server_host: str = DEFAULT_HOST
    server_port: int = DEFAULT_PORT
    secrets_alphabet: str = DEFAULT_ALPHABET  # alphabet for generated IDs
    secrets_length: int = DEFAULT_LENGTH

    def to_dict(self) -> Dict:
        """Convert to the nested config.yaml layout"""
        return {
            "version": self.version,
            "server": {
                "host": self.server_host,
                "port": self.server_port,
            },
            "security": {
                "secrets": {
                    "alphabet": self.secrets_alphabet,
                    "length": self.secrets_length,
                },
            },
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Settings":
        """Create from the nested config.yaml layout, filling defaults"""
        server = data.get("server") or {}
        secrets_cfg = (data.get("security") or {}).get("secrets") or {}

        length = secrets_cfg.get("length", DEFAULT_LENGTH)
        if not isinstance(length, int) or isinstance(length, bool) or length <= 0:
            logger.warning(f"Invalid security.secrets.length {length!r}, using default {DEFAULT_LENGTH}")
            length = DEFAULT_LENGTH

        alphabet = secrets_cfg.get("alphabet") or DEFAULT_ALPHABET

        return cls(
            version=str(data.get("version", CONFIG_VERSION)),
            server_host=str(server.get("host") or DEFAULT_HOST),
            server_port=validate_port(server.get("port", DEFAULT_PORT)),
            secrets_alphabet=str(alphabet),
            secrets_length=length,
        )


class SettingsManager:
    """Manage config.yaml persistence"""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize settings manager"""
        self.config_path = Path(config_path) if config_path else paths.config_file()

    def load(self) -> Settings:
        """
        Load settings from file

        A missing file is created with the defaults.

        Raises:
            ConfigError: If the file cannot be read or is not a YAML mapping
        """
        if not self.config_path.exists():
            settings = Settings()
            logger.info(f"Config file {self.config_path} not found, writing defaults")
            self.save(settings)
            return settings

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"failed to load config file '{self.config_path}': {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"config file '{self.config_path}' must contain a YAML mapping")
        return Settings.from_dict(data)

    def save(self, settings: Settings) -> None:
        """Save settings to file"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(settings.to_dict(), f, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"failed to save config file '{self.config_path}': {e}") from e


def load_settings(home: Optional[Path] = None) -> Settings:
    """Load configs/config.yaml under ``home`` (or the default base directory)"""
    return SettingsManager(paths.config_file(home)).load()

