"""Enumerations for platforms, job progress and analysis lifecycle."""

from enum import Enum

from config.exceptions import ConfigurationError


class Platform(str, Enum):
    FANQIE = "fanqie"
    QIDIAN = "qidian"

    @classmethod
    def parse(cls, value: "str | Platform") -> "Platform":
        """Resolve a platform name, failing fast on unsupported values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"不支持的平台: {value}",
                {"supported": ", ".join(p.value for p in cls)},
            ) from None


class ProgressStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


class AnalysisState(str, Enum):
    IDLE = "idle"
    STARTED = "start"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "error"


class EventTopic(str, Enum):
    DOWNLOAD_PROGRESS = "download-progress"
    AI_ANALYSIS = "ai-analysis"
    AI_ANALYSIS_STATUS = "ai-analysis-status"
