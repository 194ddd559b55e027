import os
from dataclasses import dataclass, field


# =============================================================================
# APP CONFIGURATION - upstream sources, timeouts, normalizer behaviour
# =============================================================================

def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class UpstreamConfig:
    """
    Where data comes from and how long we wait for it.

    api_base is the optional internal backend. When set it is tried first
    for every resource it serves, with the public FPL API as fallback.
    When empty, requests go straight to FPL.
    """

    api_base: str = field(default_factory=lambda: os.environ.get("API_BASE", "").rstrip("/"))
    league_id: str = field(default_factory=lambda: os.environ.get("LEAGUE_ID", "1391467"))

    # Wall-clock budget per outbound call (seconds)
    timeout: float = field(default_factory=lambda: _env_float("UPSTREAM_TIMEOUT", 12.0))

    # League standings only: fixed-delay sequential retry
    standings_retry_attempts: int = 3
    standings_retry_delay: float = 1.5

    # Upstream error bodies are truncated to this many characters
    body_excerpt_chars: int = 500

    @property
    def has_backend(self) -> bool:
        return bool(self.api_base)


@dataclass
class NormalizerConfig:
    """
    Payload normalizer settings.

    The deep search walks the payload looking for anything list-shaped that
    resembles the target record. It is a guess about unknown upstream shapes,
    so it can be switched off without touching the alias-based path.
    """

    deep_search_enabled: bool = True
    deep_search_max_depth: int = 4


# Initialize global config
APP_CONFIG = {
    "upstream": UpstreamConfig(),
    "normalizer": NormalizerConfig(),
}
