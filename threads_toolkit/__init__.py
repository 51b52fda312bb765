from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, ScrapeError, SinkError
from .models import Author, PostRecord, ProfileRecord

__all__ = [
    "AppConfig",
    "Author",
    "ConfigError",
    "PostRecord",
    "ProfileRecord",
    "ScrapeError",
    "SinkError",
    "config_sha256",
    "load_config",
    "resolve_runtime_secrets",
]
