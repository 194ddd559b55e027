"""
FPL Companion - Errors Module

Typed failures raised by the upstream client and the normalizer. The
FastAPI layer is the only place that turns these into HTTP responses.
"""

from typing import Optional

from fpl_companion.constants import NO_LEAGUE_DATA_MESSAGE, TIMED_OUT_MESSAGE


class UpstreamError(Exception):
    """Base class for anything that went wrong fetching or reading upstream data."""

    status_code = 502
    user_message = NO_LEAGUE_DATA_MESSAGE

    def __init__(self, resource: str, message: str):
        super().__init__(f"{resource}: {message}")
        self.resource = resource
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.user_message,
            "resource": self.resource,
            "detail": self.message,
        }


class UpstreamUnavailable(UpstreamError):
    """Network failure or timeout - nothing usable came back."""

    def __init__(self, resource: str, message: str, timed_out: bool = False):
        super().__init__(resource, message)
        self.timed_out = timed_out

    @property
    def status_code(self) -> int:
        return 504 if self.timed_out else 503

    @property
    def user_message(self) -> str:
        return TIMED_OUT_MESSAGE if self.timed_out else NO_LEAGUE_DATA_MESSAGE

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["timed_out"] = self.timed_out
        return data


class UpstreamRejected(UpstreamError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, resource: str, status: int, body_excerpt: Optional[str] = None):
        super().__init__(resource, f"Upstream {status}")
        self.status = status
        self.body_excerpt = body_excerpt or ""

    @property
    def status_code(self) -> int:
        return 404 if self.status == 404 else 502

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status"] = self.status
        data["body"] = self.body_excerpt
        return data


class MalformedResponse(UpstreamError):
    """Body could not be read as the expected document."""


class NoUsableData(UpstreamError):
    """Normalization produced nothing from a payload that should have had records."""
