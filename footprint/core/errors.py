from __future__ import annotations


class FootprintError(Exception):
    """Base class for errors raised by the analysis engine."""


class ValidationError(FootprintError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class LaunchFailure(FootprintError):
    """The browser session could not be started after bounded retries."""

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class PageCreationFailure(LaunchFailure):
    pass


class NavigationFailure(FootprintError):
    def __init__(self, message: str, url: str, timeout_ms: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.timeout_ms = timeout_ms


class InteractionFailure(FootprintError):
    """Every strategy failed for one element. Recoverable."""

    def __init__(self, reasons: dict[str, str]) -> None:
        detail = "; ".join(f"{name}: {reason}" for name, reason in reasons.items()) or "no strategy applicable"
        super().__init__(f"All interaction strategies failed ({detail})")
        self.reasons = dict(reasons)


class AnalysisError(FootprintError):
    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class CacheError(FootprintError):
    pass
