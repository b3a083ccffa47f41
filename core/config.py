"""
Configuration Module
Runtime settings read from environment variables.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from core.policy import ComparisonPolicy, DiffMode


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: `max_attempts` tries, waiting base_delay * 2**(attempt - 1) between them."""
    max_attempts: int = 2
    base_delay: float = 1.0
    max_delay: float = 10.0

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))


@dataclass(frozen=True)
class ScreenshotSettings:
    viewport_width: int = 1280
    viewport_height: int = 720
    wait_ms: int = 3000
    navigation_timeout_ms: int = 20000
    full_page: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class DownloadSettings:
    timeout: float = 30.0
    retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=0.5))


@dataclass(frozen=True)
class Settings:
    port: int = 5000
    artifacts_dir: Path = Path(tempfile.gettempdir()) / 'pixel_parity'
    comparison_workers: int = 2
    comparison_timeout: float = 120.0
    # Run directories older than this many seconds are pruned; 0 keeps them forever.
    artifacts_ttl: float = 86400.0
    cors_origins: str = '*'
    screenshot: ScreenshotSettings = field(default_factory=ScreenshotSettings)
    download: DownloadSettings = field(default_factory=DownloadSettings)
    # The server ignores antialiasing and colour shifts unless a request says otherwise.
    default_policy: ComparisonPolicy = field(
        default_factory=lambda: ComparisonPolicy(ignore_antialiasing=True, ignore_colors=True)
    )


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}")


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {value!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from `env` (defaults to os.environ)."""
    env = os.environ if env is None else env
    defaults = Settings()
    base_delay = _get_float(env, 'RETRY_BASE_DELAY', 1.0)

    screenshot = ScreenshotSettings(
        viewport_width=_get_int(env, 'SCREENSHOT_WIDTH', 1280),
        viewport_height=_get_int(env, 'SCREENSHOT_HEIGHT', 720),
        wait_ms=_get_int(env, 'SCREENSHOT_WAIT_MS', 3000),
        navigation_timeout_ms=_get_int(env, 'NAVIGATION_TIMEOUT_MS', 20000),
        full_page=_get_bool(env, 'SCREENSHOT_FULL_PAGE', False),
        retry=RetryPolicy(max_attempts=_get_int(env, 'SCREENSHOT_ATTEMPTS', 2), base_delay=base_delay),
    )
    download = DownloadSettings(
        timeout=_get_float(env, 'DOWNLOAD_TIMEOUT', 30.0),
        retry=RetryPolicy(max_attempts=_get_int(env, 'DOWNLOAD_ATTEMPTS', 3), base_delay=base_delay / 2),
    )
    policy = ComparisonPolicy(
        ignore_antialiasing=_get_bool(env, 'DIFF_IGNORE_ANTIALIASING', True),
        ignore_colors=_get_bool(env, 'DIFF_IGNORE_COLORS', True),
        diff_mode=env.get('DIFF_MODE', DiffMode.MOVEMENT.value),
        error_highlight_transparency=_get_float(env, 'DIFF_TRANSPARENCY', 0.3),
    )
    return Settings(
        port=_get_int(env, 'PORT', defaults.port),
        artifacts_dir=Path(env.get('ARTIFACTS_DIR') or defaults.artifacts_dir),
        comparison_workers=max(1, _get_int(env, 'COMPARISON_WORKERS', defaults.comparison_workers)),
        comparison_timeout=_get_float(env, 'COMPARISON_TIMEOUT', defaults.comparison_timeout),
        artifacts_ttl=max(0.0, _get_float(env, 'ARTIFACTS_TTL', defaults.artifacts_ttl)),
        cors_origins=env.get('CORS_ORIGINS', defaults.cors_origins),
        screenshot=screenshot,
        download=download,
        default_policy=policy,
    )
