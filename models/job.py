"""Transient job and request descriptions."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from models.enums import Platform


@dataclass
class DownloadJob:
    """One orchestrator run: a single novel or a rank scan.

    For a single novel ``chapter_budget`` is the total chapter count; for a
    rank scan it is the per-novel count and ``max_novels`` bounds the scan.
    """
    platform: Platform
    target: str
    chapter_budget: int
    workspace_root: Path
    evasion_visible: bool = False
    max_novels: Optional[int] = None

    @property
    def is_rank_scan(self) -> bool:
        return self.max_novels is not None


@dataclass
class AnalysisRequest:
    """Parameters of one streaming completion call."""
    api_base: str
    api_key: str
    model: str
    prompt: str
    content: str
    wants_json: bool = False
