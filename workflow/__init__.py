"""Workflow package: download graph, orchestrator, analysis pipelines, and callbacks."""

from workflow.analysis import analyze_novel, split_chapter
from workflow.callbacks import (
    AnalysisCallback,
    CollectingCallback,
    DownloadCallback,
    LoggingCallback,
    RichProgressCallback,
    TopicEmitterCallback,
)
from workflow.conditions import (
    route_after_batch,
    route_after_chapter_list,
    route_after_metadata,
)
from workflow.graph import DownloadNodes, build_download_graph, run_download_graph
from workflow.orchestrator import JobReport, Orchestrator
from workflow.state import DownloadState

__all__ = [
    "analyze_novel",
    "split_chapter",
    "AnalysisCallback",
    "CollectingCallback",
    "DownloadCallback",
    "LoggingCallback",
    "RichProgressCallback",
    "TopicEmitterCallback",
    "route_after_batch",
    "route_after_chapter_list",
    "route_after_metadata",
    "DownloadNodes",
    "build_download_graph",
    "run_download_graph",
    "JobReport",
    "Orchestrator",
    "DownloadState",
]
