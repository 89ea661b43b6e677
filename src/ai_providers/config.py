"""Configuration for ai-providers.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./ai_providers.yaml``
  3. ``~/.config/ai-providers/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger(__name__)

PLATFORMS = ("desktop", "mobile")

# Default base URLs per provider type, used when a profile omits ``url``
DEFAULT_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "ollama": "http://localhost:11434",
    "ollama-openwebui": "http://localhost:3000/ollama",
    "lmstudio": "http://localhost:1234/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
    "groq": "https://api.groq.com/openai/v1",
    "ai302": "https://api.302.ai/v1",
}


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class TransportConfig:
    """Transport selection settings.

    ``platform`` is ``"desktop"`` (the streaming bridge is available) or
    ``"mobile"`` (no bridge; every call goes through the buffered transport).
    """

    platform: str = "desktop"
    use_native_fetch: bool = False
    request_timeout: float = 10.0  # seconds until response headers
    read_timeout: float = 300.0
    stream_buffer_chunks: int = 1

    @property
    def supports_streaming_bridge(self) -> bool:
        return self.platform != "mobile"


@dataclass
class ProviderSpec:
    """A configured AI provider endpoint."""

    id: str = ""
    name: str = ""
    type: str = "openai"
    url: str = ""
    api_key: str = ""
    model: str = ""

    def base_url(self) -> str:
        return (self.url or DEFAULT_URLS.get(self.type, "")).rstrip("/")


@dataclass
class ProvidersConfig:
    """Top-level config."""

    transport: TransportConfig = field(default_factory=TransportConfig)
    providers: list[ProviderSpec] = field(default_factory=list)
    debug: bool = False

    def get_provider(self, key: str) -> ProviderSpec | None:
        """Look up a provider by name, falling back to id."""
        for provider in self.providers:
            if provider.name == key:
                return provider
        for provider in self.providers:
            if provider.id == key:
                return provider
        return None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./ai_providers.yaml"),
    Path.home() / ".config" / "ai-providers" / "config.yaml",
]


def _parse_transport(raw: dict[str, Any] | None) -> TransportConfig:
    if not raw:
        return TransportConfig()
    platform = raw.get("platform", "desktop")
    if platform not in PLATFORMS:
        raise ValueError(
            f"Unknown platform {platform!r}; expected one of {', '.join(PLATFORMS)}"
        )
    base: dict[str, Any] = {}
    for k, v in raw.items():
        if v is not None and k in TransportConfig.__dataclass_fields__:
            base[k] = v
    return TransportConfig(**base)


def _parse_provider(index: int, raw: dict[str, Any]) -> ProviderSpec:
    ptype = raw.get("type", "openai")
    name = raw.get("name") or f"{ptype}-{index}"
    return ProviderSpec(
        id=str(raw.get("id", name)),
        name=name,
        type=ptype,
        url=raw.get("url", ""),
        api_key=raw.get("api_key", ""),
        model=raw.get("model", ""),
    )


def load_config(path: str | Path | None = None) -> ProvidersConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ProvidersConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ProvidersConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ProvidersConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    providers = [
        _parse_provider(i, praw)
        for i, praw in enumerate(raw.get("providers", []) or [])
    ]

    return ProvidersConfig(
        transport=_parse_transport(raw.get("transport")),
        providers=providers,
        debug=bool(raw.get("debug", False)),
    )
