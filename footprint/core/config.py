from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any
from urllib.parse import urlparse, urlunparse

from footprint.core.errors import ValidationError


class InteractionLevel(str, Enum):
    MINIMAL = "minimal"
    DEFAULT = "default"
    THOROUGH = "thorough"


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


@dataclass(frozen=True)
class DeviceProfile:
    width: int
    height: int
    device_scale_factor: float
    is_mobile: bool
    has_touch: bool
    user_agent: str

    def viewport(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_7_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/14.1.2 Mobile/15E148 Safari/604.1"
)

# Desktop keeps touch off: enabling touch emulation races with page teardown.
DEVICE_PROFILES: dict[DeviceType, DeviceProfile] = {
    DeviceType.DESKTOP: DeviceProfile(
        width=1920,
        height=1080,
        device_scale_factor=1.0,
        is_mobile=False,
        has_touch=False,
        user_agent=DESKTOP_USER_AGENT,
    ),
    DeviceType.MOBILE: DeviceProfile(
        width=375,
        height=667,
        device_scale_factor=2.0,
        is_mobile=True,
        has_touch=True,
        user_agent=MOBILE_USER_AGENT,
    ),
}


def profile_for(device_type: DeviceType | str) -> DeviceProfile:
    return DEVICE_PROFILES[DeviceType(device_type)]


@dataclass(frozen=True)
class AnalysisOptions:
    interaction_level: InteractionLevel = InteractionLevel.DEFAULT
    device_type: DeviceType = DeviceType.DESKTOP
    max_interactions: int = 2
    max_scroll_steps: int = 3
    timeout_ms: int = 120_000
    verbose_logging: bool = True

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["interaction_level"] = self.interaction_level.value
        payload["device_type"] = self.device_type.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "AnalysisOptions":
        return cls(
            interaction_level=InteractionLevel(payload.get("interaction_level", "default")),
            device_type=DeviceType(payload.get("device_type", "desktop")),
            max_interactions=int(payload.get("max_interactions", 2)),
            max_scroll_steps=int(payload.get("max_scroll_steps", 3)),
            timeout_ms=int(payload.get("timeout_ms", 120_000)),
            verbose_logging=bool(payload.get("verbose_logging", True)),
        )

    def fingerprint_fields(self) -> dict[str, Any]:
        """Subset of options that changes what an analysis observes."""
        return {
            "interaction_level": self.interaction_level.value,
            "device_type": self.device_type.value,
            "max_interactions": self.max_interactions,
            "max_scroll_steps": self.max_scroll_steps,
        }


_LEVEL_BOUNDS: dict[InteractionLevel, tuple[int, int]] = {
    InteractionLevel.MINIMAL: (0, 1),
    InteractionLevel.DEFAULT: (2, 3),
    InteractionLevel.THOROUGH: (5, 6),
}


def create_analysis_options(
    interaction_level: InteractionLevel | str = InteractionLevel.DEFAULT,
    device_type: DeviceType | str = DeviceType.DESKTOP,
    timeout_ms: int | None = None,
    verbose_logging: bool = True,
) -> AnalysisOptions:
    try:
        level = InteractionLevel(interaction_level)
    except ValueError as exc:
        raise ValidationError(f"Unknown interaction level: {interaction_level}", field="interaction_level") from exc
    try:
        device = DeviceType(device_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown device type: {device_type}", field="device_type") from exc

    max_interactions, max_scroll_steps = _LEVEL_BOUNDS[level]
    options = AnalysisOptions(
        interaction_level=level,
        device_type=device,
        max_interactions=max_interactions,
        max_scroll_steps=max_scroll_steps,
        verbose_logging=verbose_logging,
    )
    if timeout_ms is not None:
        options = replace(options, timeout_ms=int(timeout_ms))
    return options


def validate_options(options: AnalysisOptions) -> None:
    if options.timeout_ms < 30_000:
        raise ValidationError("Analysis timeout must be at least 30 seconds", field="timeout_ms")
    if not 0 <= options.max_interactions <= 20:
        raise ValidationError("Max interactions must be between 0 and 20", field="max_interactions")
    if not 0 <= options.max_scroll_steps <= 10:
        raise ValidationError("Max scroll steps must be between 0 and 10", field="max_scroll_steps")


def complexity_score(options: AnalysisOptions) -> int:
    score = 1
    score += {
        InteractionLevel.MINIMAL: 1,
        InteractionLevel.DEFAULT: 3,
        InteractionLevel.THOROUGH: 5,
    }[options.interaction_level]
    if options.device_type == DeviceType.MOBILE:
        score += 2
    score += options.max_interactions // 2
    score += options.max_scroll_steps // 2
    return min(score, 10)


def estimate_duration_ms(options: AnalysisOptions) -> int:
    return 15_000 + complexity_score(options) * 5_000


def normalize_url(url: str) -> str:
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError("URL is required", field="url")
    if not candidate.startswith(("http://", "https://")):
        candidate = f"https://{candidate}"
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError(f"Invalid URL format: {url}", field="url")
    path = parsed.path or "/"
    return urlunparse((parsed.scheme, parsed.netloc.lower(), path, parsed.params, parsed.query, ""))


def is_valid_url(url: str) -> bool:
    try:
        normalize_url(url)
    except ValidationError:
        return False
    return True


def extract_domain(url: str) -> str:
    return urlparse(normalize_url(url)).hostname or ""


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class EngineSettings:
    headless: bool = True
    executable_path: str | None = None
    max_concurrent_analyses: int = 3
    launch_retries: int = 3
    launch_backoff_ms: int = 500
    cache_enabled: bool = True
    cache_ttl_hours: int = 240
    cache_db_path: str = "/tmp/footprint-cache/analyses.db"
    log_level: str = "INFO"
    chromium_args: tuple[str, ...] = field(
        default=(
            "--disable-extensions",
            "--disable-plugins",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--disable-background-timer-throttling",
            "--disable-backgrounding-occluded-windows",
            "--disable-renderer-backgrounding",
            "--disable-features=TranslateUI",
            "--disable-default-apps",
            "--disable-sync",
            "--no-first-run",
        )
    )

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            headless=_env_bool("FOOTPRINT_HEADLESS", True),
            executable_path=os.getenv("FOOTPRINT_EXECUTABLE_PATH") or None,
            max_concurrent_analyses=int(os.getenv("FOOTPRINT_MAX_CONCURRENT", "3")),
            launch_retries=int(os.getenv("FOOTPRINT_LAUNCH_RETRIES", "3")),
            cache_enabled=_env_bool("FOOTPRINT_CACHE_ENABLED", True),
            cache_ttl_hours=int(os.getenv("FOOTPRINT_CACHE_TTL_HOURS", "240")),
            cache_db_path=os.getenv("FOOTPRINT_CACHE_DB", "/tmp/footprint-cache/analyses.db"),
            log_level=os.getenv("FOOTPRINT_LOG_LEVEL", "INFO").upper(),
        )
