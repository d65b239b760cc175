"""Typed event payloads, one type per topic."""

from dataclasses import asdict, dataclass

from models.enums import AnalysisState, ProgressStatus


@dataclass(frozen=True)
class ProgressEvent:
    """Download progress (topic ``download-progress``)."""
    message: str
    status: ProgressStatus

    def to_payload(self) -> dict:
        return {"message": self.message, "status": self.status.value}


@dataclass(frozen=True)
class AnalysisChunk:
    """One streamed completion fragment (topic ``ai-analysis``)."""
    chunk: str

    def to_payload(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AnalysisStatusEvent:
    """Analysis lifecycle change (topic ``ai-analysis-status``)."""
    message: str
    status: AnalysisState

    def to_payload(self) -> dict:
        return {"message": self.message, "status": self.status.value}
