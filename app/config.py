"""
Configuration for the claims exposure service.

Settings are read from environment variables (optionally from a .env file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Repository root - relative defaults resolve against it
PROJECT_ROOT = Path(__file__).parent.parent

DEFAULT_SOURCE_PATH = "data/open-exposure.csv"
DEFAULT_SNAPSHOT_ROOT = "data/snapshots"
DEFAULT_POLICIES_PATH = "prompts/claims-exposure-policies.json"
DEFAULT_SAMPLE_SIZE = 500


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _resolve(path: str) -> str:
    candidate = Path(path)
    if candidate.is_absolute():
        return str(candidate)
    return str(PROJECT_ROOT / candidate)


@dataclass
class ExposureSettings:
    """Settings for the exposure aggregation and risk classification run."""

    source_path: str = field(default_factory=lambda: _resolve(DEFAULT_SOURCE_PATH))
    snapshot_root: str = field(default_factory=lambda: _resolve(DEFAULT_SNAPSHOT_ROOT))
    policies_path: str = field(default_factory=lambda: _resolve(DEFAULT_POLICIES_PATH))
    sample_size: int = DEFAULT_SAMPLE_SIZE
    save_snapshots: bool = True

    @classmethod
    def from_env(cls) -> "ExposureSettings":
        """Load exposure settings from environment variables."""
        return cls(
            source_path=_resolve(os.getenv("EXPOSURE_SOURCE_PATH", DEFAULT_SOURCE_PATH)),
            snapshot_root=_resolve(os.getenv("EXPOSURE_SNAPSHOT_ROOT", DEFAULT_SNAPSHOT_ROOT)),
            policies_path=_resolve(os.getenv("EXPOSURE_POLICIES_PATH", DEFAULT_POLICIES_PATH)),
            sample_size=_env_int("EXPOSURE_SAMPLE_SIZE", DEFAULT_SAMPLE_SIZE),
            save_snapshots=_env_bool("EXPOSURE_SAVE_SNAPSHOTS", True),
        )


@dataclass
class AppSettings:
    """Top-level application settings."""

    log_level: str = "INFO"
    frontend_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            frontend_url=os.getenv("FRONTEND_URL") or None,
        )


@dataclass
class Settings:
    app: AppSettings
    exposure: ExposureSettings


def load_settings() -> Settings:
    """Load all settings, reading a .env file first if present."""
    load_dotenv()
    return Settings(
        app=AppSettings.from_env(),
        exposure=ExposureSettings.from_env(),
    )


def validate_settings(settings: Settings) -> List[str]:
    """
    Validate settings and return a list of human-readable problems.

    An empty list means the configuration is usable.
    """
    errors: List[str] = []
    exposure = settings.exposure

    if not Path(exposure.source_path).exists():
        errors.append(f"Exposure source file not found: {exposure.source_path}")
    if exposure.sample_size < 0:
        errors.append("EXPOSURE_SAMPLE_SIZE must be zero or positive")
    if settings.app.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        errors.append(f"Unsupported LOG_LEVEL: {settings.app.log_level}")

    return errors
