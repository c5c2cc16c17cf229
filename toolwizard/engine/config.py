"""Engine settings from an optional YAML file and TOOLWIZARD_* variables."""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .backend import HttpActionBackend
from .errors import ConfigurationError
from .poller import DEFAULT_POLL_INTERVAL

CONFIG_FILE = 'toolwizard.yaml'

ENV_KEYS = {
    'TOOLWIZARD_API_BASE_URL': 'api_base_url',
    'TOOLWIZARD_POLL_INTERVAL': 'poll_interval',
    'TOOLWIZARD_REQUEST_TIMEOUT': 'request_timeout',
    'TOOLWIZARD_CATALOG_DIR': 'catalog_dir',
    'TOOLWIZARD_VERBOSE': 'verbose',
}

TRUTHY = ('1', 'true', 'yes', 'y', 'on')


class EngineSettings(BaseModel):
    api_base_url: str = Field('', description="Prefix for relative endpoints")
    poll_interval: float = Field(DEFAULT_POLL_INTERVAL, gt=0, description="Seconds between job polls")
    request_timeout: Optional[float] = Field(None, gt=0, description="Per-request timeout; None waits")
    catalog_dir: Optional[Path] = Field(None, description="Directory holding catalog/")
    headers: Dict[str, str] = Field(default_factory=dict)
    verbose: bool = False

    def create_backend(self) -> HttpActionBackend:
        return HttpActionBackend(
            base_url=self.api_base_url,
            headers=self.headers,
            timeout=self.request_timeout,
        )


def load_settings(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """Load settings: YAML file first, environment variables override.

    Args:
        path: Config file (default: ./toolwizard.yaml, skipped if absent)
        environ: Environment mapping (default: os.environ)

    Raises:
        ConfigurationError: If the file is malformed or a value is invalid
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path) if path else Path.cwd() / CONFIG_FILE
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping")
        data.update(loaded.get('toolwizard', loaded))
    elif path:
        raise ConfigurationError(f"Config file not found: {config_path}")

    for env_key, setting in ENV_KEYS.items():
        if env_key not in environ:
            continue
        value: Any = environ[env_key]
        if setting == 'verbose':
            value = value.strip().lower() in TRUTHY
        data[setting] = value

    try:
        return EngineSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}")
