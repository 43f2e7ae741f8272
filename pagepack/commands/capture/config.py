"""Capture options and URL validation."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ConfigurationError(Exception):
    """Raised for an invalid URL or options, before any resource is acquired."""


class CaptureOptions(BaseModel):
    """Every option a capture recognizes. Timeouts are in milliseconds."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Console
    verbose: bool = False
    proxy_verbose: bool = False

    # Resources
    headless: bool = True
    proxy_host: str = "localhost"
    proxy_port: int = Field(default=9000, ge=1, le=65535)
    capture_window_x: int = Field(default=1600, gt=0)
    capture_window_y: int = Field(default=900, gt=0)

    # Step timeouts
    load_timeout: int = Field(default=20_000, gt=0)
    network_idle_timeout: int = Field(default=20_000, gt=0)
    behaviors_timeout: int = Field(default=20_000, gt=0)
    auto_scroll_timeout: int = Field(default=10_000, gt=0)
    screenshot_timeout: int = Field(default=10_000, gt=0)

    # Size budget
    max_size: int = Field(default=200 * 1024 * 1024, gt=0)

    # Pipeline toggles
    grab_secondary_resources: bool = True
    auto_play_media: bool = True
    run_site_specific_behaviors: bool = True
    behaviors_script: Path | None = None
    auto_scroll: bool = True
    screenshot: bool = True

    # Export
    include_raw: bool = False
    provenance_summary: bool = True

    @property
    def runs_behaviors(self) -> bool:
        return (
            self.grab_secondary_resources
            or self.auto_play_media
            or self.run_site_specific_behaviors
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CaptureOptions:
        """Build options from a plain mapping, rejecting unknown keys."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid capture options: {problems}") from e


def validate_url(url: str) -> str:
    """Return url if it is an absolute http(s) URL, else raise ConfigurationError."""
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ConfigurationError(f"Invalid url provided: {url!r}") from e
    if parts.scheme not in ("http", "https"):
        raise ConfigurationError(
            f"Invalid url provided: {url!r} (only http and https are supported)"
        )
    if not parts.netloc:
        raise ConfigurationError(f"Invalid url provided: {url!r} (missing host)")
    return parts.geturl()
