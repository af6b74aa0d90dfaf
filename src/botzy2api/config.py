"""
Proxy configuration management.

The proxy reads its settings once at startup and hands the resulting
``ProxyConfig`` to everything that needs it. Settings are resolved in order:

  1. Built-in defaults (``DEFAULT_CONFIG``)
  2. The JSON config file at ~/.botzy2api/config.json (managed by
     ``botzy2api config set/unset``)
  3. Environment variables (PORT, API_MASTER_KEY, UPSTREAM_URL, ...)

Config file format:
    {
        "port": 3000,
        "api_master_key": "sk-local",
        "default_model": "L1T3-Ωᴹ²",
        "models": ["L1T3-Ωᴹ²"]
    }
"""

import json
import os
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

# Config file location
CONFIG_PATH = Path.home() / ".botzy2api" / "config.json"

DEFAULT_MODEL = "L1T3-Ωᴹ²"

DEFAULT_CONFIG = {
    "project_name": "botzy-2api",
    "port": 3000,
    "api_master_key": "1",
    "upstream_url": "https://botzy.hexabiz.com.pk/api/hexabizApi",
    "upstream_origin": "https://botzy.hexabiz.com.pk",
    "default_model": DEFAULT_MODEL,
    "models": [DEFAULT_MODEL],
    "flush_trailing_line": False,
}

# Environment variable -> config key
ENV_VARS = {
    "PROJECT_NAME": "project_name",
    "PORT": "port",
    "API_MASTER_KEY": "api_master_key",
    "UPSTREAM_URL": "upstream_url",
    "UPSTREAM_ORIGIN": "upstream_origin",
    "DEFAULT_MODEL": "default_model",
    "MODELS": "models",
    "FLUSH_TRAILING_LINE": "flush_trailing_line",
}


class ProxyConfig(BaseModel):
    """Immutable proxy settings, built once at process start.

    Attributes:
        project_name: Service name reported by the health endpoint.
        port: Port the API server listens on.
        api_master_key: Bearer token clients must present on /v1/* routes.
        upstream_url: Full URL of the upstream chat endpoint.
        upstream_origin: Origin (and Referer base) sent to the upstream.
        default_model: Model used when a request does not name one.
        models: Model identifiers advertised by /v1/models.
        flush_trailing_line: Treat end of the upstream stream as a line
            terminator instead of dropping an unterminated final line.
    """
    model_config = ConfigDict(frozen=True)

    project_name: str = DEFAULT_CONFIG["project_name"]
    port: int = DEFAULT_CONFIG["port"]
    api_master_key: str = DEFAULT_CONFIG["api_master_key"]
    upstream_url: str = DEFAULT_CONFIG["upstream_url"]
    upstream_origin: str = DEFAULT_CONFIG["upstream_origin"]
    default_model: str = DEFAULT_MODEL
    models: tuple[str, ...] = (DEFAULT_MODEL,)
    flush_trailing_line: bool = False


def load_config() -> dict:
    """Load the raw configuration dictionary from disk.

    Returns a copy of DEFAULT_CONFIG if the file doesn't exist or can't be
    parsed. Values from the file override the defaults key by key.

    Returns:
        dict: The merged configuration dictionary.
    """
    config = dict(DEFAULT_CONFIG)
    if not CONFIG_PATH.exists():
        return config
    try:
        stored = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        logger.warning(f"Ignoring unreadable config file: {CONFIG_PATH}")
        return config
    if isinstance(stored, dict):
        config.update(stored)
    return config


def save_config(config: dict) -> None:
    """Write the configuration to disk.

    Creates the parent directory (~/.botzy2api/) if it doesn't exist. Writes
    the config as pretty-printed JSON with UTF-8 encoding.

    Args:
        config: The configuration dictionary to save.
    """
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(
        json.dumps(config, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )


def _env_overrides(environ) -> dict:
    overrides = {}
    for env_name, key in ENV_VARS.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        if key == "models":
            overrides[key] = [m.strip() for m in raw.split(",") if m.strip()]
        elif key == "flush_trailing_line":
            overrides[key] = raw.strip().lower() in {"1", "true", "yes", "on"}
        else:
            overrides[key] = raw
    return overrides


def build_config(
    config: Optional[dict] = None, environ: Optional[dict] = None
) -> ProxyConfig:
    """Resolve the effective ProxyConfig.

    Args:
        config: Optional pre-loaded config dict. If None, loads from disk.
        environ: Optional environment mapping. If None, uses os.environ.

    Returns:
        ProxyConfig: The frozen configuration object.

    Raises:
        ValueError: If a setting has an invalid value (e.g. non-numeric PORT).
    """
    if config is None:
        config = load_config()
    if environ is None:
        environ = os.environ

    merged = dict(config)
    merged.update(_env_overrides(environ))
    known = {k: v for k, v in merged.items() if k in ProxyConfig.model_fields}
    try:
        return ProxyConfig(**known)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e
