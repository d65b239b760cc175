"""Models package: records, enums, events, and the local store."""

from models.chapter import ChapterContent, ChapterRef
from models.enums import AnalysisState, EventTopic, Platform, ProgressStatus
from models.events import AnalysisChunk, AnalysisStatusEvent, ProgressEvent
from models.job import AnalysisRequest, DownloadJob
from models.novel import AnalysisResult, NovelMetadata, RankEntry
from models.store import FileNode, LocalStore, ensure_workspace_dirs

__all__ = [
    "ChapterRef",
    "ChapterContent",
    "Platform",
    "ProgressStatus",
    "AnalysisState",
    "EventTopic",
    "ProgressEvent",
    "AnalysisChunk",
    "AnalysisStatusEvent",
    "DownloadJob",
    "AnalysisRequest",
    "NovelMetadata",
    "AnalysisResult",
    "RankEntry",
    "FileNode",
    "LocalStore",
    "ensure_workspace_dirs",
]
