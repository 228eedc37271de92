"""Capture configuration.

Settings come from three layers, later ones winning:
    1. built-in defaults (the values the viewer was reverse engineered with)
    2. optional JSON file, config/capture_settings.json by default
    3. PAGECAPTURE_* environment variables

The CLI applies its own flags on top via dataclasses.replace().
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import os

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("config") / "capture_settings.json"


@dataclass
class CaptureConfig:
    parent_page_urls: List[str] = field(default_factory=list)
    output_pdf_prefix: str = "scraped_pdf"
    temp_dir: str = "temp_images"
    cookies_file: str = "cookies.json"
    page_file_pattern: str = "page_{index}.png"

    # None means "read it from the viewer"
    total_pages: Optional[int] = None
    fallback_total_pages: int = 165

    settle_seconds: float = 2.0
    initial_settle_seconds: float = 10.0
    navigation_timeout_ms: int = 60000
    headless: bool = False

    candidate_selector: str = 'img[src^="blob:"], canvas'
    next_button_selector: str = '[aria-label="Go to next page"]'
    total_pages_selector: str = ".PageNumberUI__totalPagesModern___1zDK_"
    frame_selector: str = "iframe"

    log_level: str = "INFO"

    def page_file_name(self, index: int) -> str:
        return self.page_file_pattern.format(index=index)

    def validate(self) -> None:
        if "{index}" not in self.page_file_pattern:
            raise ConfigurationError("page_file_pattern must contain '{index}'")
        if self.total_pages is not None and self.total_pages < 1:
            raise ConfigurationError("total_pages must be >= 1")
        if self.fallback_total_pages < 1:
            raise ConfigurationError("fallback_total_pages must be >= 1")
        if self.settle_seconds < 0 or self.initial_settle_seconds < 0:
            raise ConfigurationError("settle intervals must not be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaptureConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)


_ENV_OVERRIDES = {
    "PAGECAPTURE_TEMP_DIR": ("temp_dir", str),
    "PAGECAPTURE_OUTPUT_PREFIX": ("output_pdf_prefix", str),
    "PAGECAPTURE_COOKIES_FILE": ("cookies_file", str),
    "PAGECAPTURE_LOG_LEVEL": ("log_level", str),
    "PAGECAPTURE_HEADLESS": ("headless", lambda v: v.strip().lower() in ("1", "true", "yes", "on")),
}


def load_config(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> CaptureConfig:
    """Build a CaptureConfig from defaults, an optional JSON file and the environment.

    An explicitly passed config_path must exist; the default path is optional.

    Raises:
        ConfigurationError: unreadable/invalid JSON, unknown keys or bad values.
    """
    environ = os.environ if environ is None else environ
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    data: Dict[str, Any] = {}
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config {path} must contain a JSON object")
    elif config_path:
        raise ConfigurationError(f"Config file not found: {path}")

    for env_name, (key, convert) in _ENV_OVERRIDES.items():
        if env_name in environ:
            data[key] = convert(environ[env_name])

    try:
        config = CaptureConfig.from_dict(data)
    except TypeError as e:
        raise ConfigurationError(str(e)) from e
    config.validate()
    return config
