"""Configuration package: settings, logging, and exceptions."""

from config.exceptions import (
    NovelScoutError,
    ConfigurationError,
    FetchError,
    SourceFormatError,
    ChallengeDetectedError,
    EvasionTimeoutError,
    AnalysisError,
    UpstreamAnalysisError,
    ExtractionError,
    StoreError,
    EntryNotFoundError,
)
from config.logging_config import setup_logging, read_log, clear_log
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "read_log",
    "clear_log",
    "NovelScoutError",
    "ConfigurationError",
    "FetchError",
    "SourceFormatError",
    "ChallengeDetectedError",
    "EvasionTimeoutError",
    "AnalysisError",
    "UpstreamAnalysisError",
    "ExtractionError",
    "StoreError",
    "EntryNotFoundError",
]
