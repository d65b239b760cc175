"""LangGraph state of a single-novel download."""

from typing import TypedDict

from models.chapter import ChapterRef


class DownloadState(TypedDict, total=False):
    """State shared by the download graph nodes.

    Fields are grouped logically:
    - Input: novel_url, chapter_budget
    - Catalog: title, novel_name
    - Chapters: pending (refs still to fetch), cursor (next batch start)
    - Counters: downloaded, existing, failed
    - Control: error, last_node
    """

    # Input
    novel_url: str
    chapter_budget: int

    # Catalog
    title: str
    novel_name: str

    # Chapters
    pending: list[ChapterRef]
    cursor: int

    # Counters
    downloaded: int
    existing: int
    failed: int

    # Control flow
    error: str
    last_node: str
