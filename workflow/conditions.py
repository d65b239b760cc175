"""Conditional routing functions for the download graph."""

from workflow.state import DownloadState


def route_after_metadata(state: DownloadState) -> str:
    """Catalog failure ends the job; a zero budget skips the chapter list."""
    if state.get("error"):
        return "handle_error"
    if state.get("chapter_budget", 0) <= 0:
        return "finalize"
    return "fetch_chapter_list"


def route_after_chapter_list(state: DownloadState) -> str:
    if state.get("error"):
        return "handle_error"
    if not state.get("pending"):
        return "finalize"
    return "download_batch"


def route_after_batch(state: DownloadState) -> str:
    """Loop over batches until every pending chapter was attempted."""
    if state.get("cursor", 0) < len(state.get("pending", [])):
        return "download_batch"
    return "finalize"
