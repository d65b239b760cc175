"""Custom exception hierarchy for the acquisition and analysis pipeline."""

from typing import Optional


class NovelScoutError(Exception):
    """Base exception for all novelscout errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Configuration Errors ----

class ConfigurationError(NovelScoutError):
    """Unsupported platform, missing credentials or missing workspace.

    Fatal to the triggering call and never retried.
    """


# ---- Fetch Errors ----

class FetchError(NovelScoutError):
    """Transient failure while fetching a remote page."""

    def __init__(self, message: str, url: str = "", details: Optional[dict] = None):
        details = dict(details or {})
        if url:
            details.setdefault("url", url)
        super().__init__(message, details)
        self.url = url


class SourceFormatError(FetchError):
    """Expected markup was missing from a fetched page."""

    def __init__(self, selector: str, url: str = "", message: str = ""):
        msg = message or f"Expected markup not found: {selector}"
        super().__init__(msg, url, {"selector": selector})
        self.selector = selector


class ChallengeDetectedError(FetchError):
    """A verification / anti-bot page was returned and could not be bypassed."""


class EvasionTimeoutError(FetchError):
    """The browser session did not reach a usable page within the timeout."""

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Timed out after {timeout:g}s waiting for page",
            url,
            {"timeout": timeout},
        )
        self.timeout = timeout


# ---- Analysis Errors ----

class AnalysisError(NovelScoutError):
    """Base exception for AI analysis errors."""


class UpstreamAnalysisError(AnalysisError):
    """Transport failure or an error reported by the completion API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {"status": status_code} if status_code is not None else {}
        super().__init__(message, details)
        self.status_code = status_code


class ExtractionError(AnalysisError):
    """No valid analysis JSON could be recovered from a model response."""

    def __init__(self, message: str = "Failed to extract JSON from response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


# ---- Store Errors ----

class StoreError(NovelScoutError):
    """Local store operation failed."""


class EntryNotFoundError(StoreError):
    """A novel directory, chapter file or metadata file does not exist."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message, {"path": path} if path else None)
        self.path = path
