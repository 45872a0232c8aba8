"""
Configuration management for FleetDesk.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _parse_flag(value: Optional[str], default: bool = False) -> bool:
    """Parse '1'/'true'/'yes' style flags."""
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _sanitize(value: Optional[str]) -> str:
    """Strip quotes and whitespace that often sneak into .env files."""
    if not value:
        return ''
    return value.replace('"', '').replace("'", '').strip()


@dataclass(frozen=True)
class RemoteConfig:
    """Remote backend configuration (collection-oriented REST API)."""
    url: str = _sanitize(os.getenv('REMOTE_URL'))
    api_key: str = _sanitize(os.getenv('REMOTE_API_KEY'))
    access_token: str = _sanitize(os.getenv('REMOTE_ACCESS_TOKEN'))
    enabled: bool = _parse_flag(os.getenv('REMOTE_ENABLED'), default=True)

    @property
    def is_configured(self) -> bool:
        # The single gate for attempting the remote at all
        return self.enabled and self.url.startswith('http') and bool(self.api_key)


@dataclass(frozen=True)
class StoreConfig:
    """Entity store resilience settings."""
    timeout_seconds: float = float(os.getenv('STORE_TIMEOUT_SECONDS', '8'))
    refresh_interval: int = int(os.getenv('REFRESH_INTERVAL_SECONDS', '30'))
    request_timeout: float = 30.0  # Hard ceiling for the HTTP call itself
    max_workers: int = 4


@dataclass(frozen=True)
class MirrorConfig:
    """Local mirror database configuration."""
    url: str = os.getenv('MIRROR_DATABASE_URL', 'sqlite:///fleetdesk_mirror.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class UploadConfig:
    """Blob upload settings."""
    bucket: str = os.getenv('UPLOAD_BUCKET', 'mission-files')
    local_dir: str = os.getenv('UPLOAD_DIR', 'uploads')


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    remote: RemoteConfig
    store: StoreConfig
    mirror: MirrorConfig
    upload: UploadConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        remote=RemoteConfig(),
        store=StoreConfig(),
        mirror=MirrorConfig(),
        upload=UploadConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
