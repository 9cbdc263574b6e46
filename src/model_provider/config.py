"""Configuration for model_provider.

Settings are read once, at composition time, into plain dataclasses.

Discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./model_provider.yaml``
  3. ``~/.config/model-provider/config.yaml``
  4. Built-in defaults

Environment variables are applied on top of whatever was found.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class EndpointSpec:
    """Where and how to reach one inference backend."""

    base_url: str
    api_key: str | None = None
    model: str | None = None


def _ollama_default() -> EndpointSpec:
    return EndpointSpec(base_url="http://127.0.0.1:11434/api", model="llama2")


def _llamafile_default() -> EndpointSpec:
    return EndpointSpec(base_url="http://127.0.0.1:8080", model="")


def _together_default() -> EndpointSpec:
    return EndpointSpec(base_url="https://api.together.xyz")


@dataclass
class Settings:
    """Top-level settings, one ``EndpointSpec`` per provider."""

    ollama: EndpointSpec = field(default_factory=_ollama_default)
    llamafile: EndpointSpec = field(default_factory=_llamafile_default)
    together: EndpointSpec = field(default_factory=_together_default)

    # Seconds; read timeout applies between streamed chunks
    timeout: float = 120
    read_timeout: float = 300

    def endpoint(self, provider: str) -> EndpointSpec:
        try:
            return getattr(self, provider)
        except AttributeError:
            raise KeyError(f"Unknown provider: {provider}") from None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./model_provider.yaml"),
    Path.home() / ".config" / "model-provider" / "config.yaml",
]

# (provider, attribute) <- environment variable
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "OLLAMA_API_BASE": ("ollama", "base_url"),
    "OLLAMA_MODEL": ("ollama", "model"),
    "LLAMAFILE_API_BASE": ("llamafile", "base_url"),
    "LLAMAFILE_MODEL": ("llamafile", "model"),
    "TOGETHERAI_API_BASE": ("together", "base_url"),
    "TOGETHERAI_API_KEY": ("together", "api_key"),
    "TOGETHERAI_MODEL": ("together", "model"),
}


def _parse_endpoint(raw: dict[str, Any] | None, default: EndpointSpec) -> EndpointSpec:
    if not raw:
        return default
    return EndpointSpec(
        base_url=raw.get("base_url", default.base_url),
        api_key=raw.get("api_key", default.api_key),
        model=raw.get("model", default.model),
    )


def _apply_env(settings: Settings, environ: Mapping[str, str]) -> None:
    for var, (provider, attr) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            setattr(settings.endpoint(provider), attr, value)


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from YAML and the environment.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.
    environ:
        Mapping to read overrides from.  Defaults to ``os.environ``.

    Returns
    -------
    Settings
    """
    environ = os.environ if environ is None else environ
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s — using defaults", path)
            config_path = None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    raw: dict[str, Any] = {}
    if config_path is None:
        _logger.info("No config file found — using defaults")
    else:
        _logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    providers = raw.get("providers", {}) or {}
    settings = Settings(
        ollama=_parse_endpoint(providers.get("ollama"), _ollama_default()),
        llamafile=_parse_endpoint(providers.get("llamafile"), _llamafile_default()),
        together=_parse_endpoint(providers.get("together"), _together_default()),
        timeout=raw.get("timeout", 120),
        read_timeout=raw.get("read_timeout", 300),
    )
    _apply_env(settings, environ)
    return settings
