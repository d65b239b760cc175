"""LangGraph StateGraph: drives one single-novel download.

fetch_metadata -> fetch_chapter_list -> download_batch (loop) -> finalize,
with handle_error as the terminal branch for catalog failures.
"""

import asyncio
import logging
import math
from typing import Optional

from langgraph.graph import StateGraph, END

from config.exceptions import FetchError, StoreError
from config.settings import Settings
from models.chapter import ChapterContent, ChapterRef
from models.enums import ProgressStatus
from models.events import ProgressEvent
from models.store import LocalStore
from spiders.base import SourceAdapter
from workflow.conditions import (
    route_after_batch,
    route_after_chapter_list,
    route_after_metadata,
)
from workflow.retry import retry_fetch
from workflow.state import DownloadState

logger = logging.getLogger(__name__)


class DownloadNodes:
    """Node functions bound to one job's adapter, store and callback.

    One instance per novel job, so concurrent jobs in a rank scan never share
    mutable state.
    """

    def __init__(
        self,
        adapter: SourceAdapter,
        store: LocalStore,
        settings: Settings,
        callback=None,
    ):
        self.adapter = adapter
        self.store = store
        self.settings = settings
        self.callback = callback

    def _emit(self, message: str, status: ProgressStatus = ProgressStatus.RUNNING) -> None:
        if self.callback is not None:
            self.callback.on_progress(ProgressEvent(message=message, status=status))

    async def fetch_metadata(self, state: DownloadState) -> dict:
        """Fetch catalog metadata and persist it right away."""
        logger.info("Entering node: fetch_metadata")
        url = state["novel_url"]
        self._emit(f"正在获取元数据: {url}")

        try:
            metadata = await retry_fetch(
                lambda: self.adapter.fetch_catalog_metadata(url),
                attempts=self.settings.max_retries,
                delay=self.settings.retry_delay,
                description=f"Metadata fetch for {url}",
            )
        except FetchError as e:
            return {"error": f"获取元数据失败: {e}", "last_node": "fetch_metadata"}

        try:
            novel_name = self.store.save_catalog_metadata(metadata)
        except StoreError as e:
            return {"error": f"保存元数据失败: {e}", "last_node": "fetch_metadata"}

        logger.info("Metadata saved for 《%s》 (%d tags)", metadata.title, len(metadata.tags))
        return {
            "title": metadata.title,
            "novel_name": novel_name,
            "last_node": "fetch_metadata",
        }

    async def fetch_chapter_list(self, state: DownloadState) -> dict:
        """Resolve the chapter list and drop chapters already on disk."""
        logger.info("Entering node: fetch_chapter_list")
        novel_name = state["novel_name"]
        budget = state["chapter_budget"]
        self._emit(f"正在获取章节列表 [{novel_name}]...")

        try:
            refs = await retry_fetch(
                lambda: self.adapter.fetch_chapter_list(state["novel_url"]),
                attempts=self.settings.max_retries,
                delay=self.settings.retry_delay,
                description=f"Chapter list fetch for {novel_name}",
            )
        except FetchError as e:
            return {"error": f"获取章节列表失败: {e}", "last_node": "fetch_chapter_list"}

        requested = refs[:budget]
        self._emit(f"准备下载 {len(requested)} 章 (总请求: {budget})...")
        if not requested:
            logger.warning("No chapters to download for %s", novel_name)

        pending = []
        existing = 0
        for ref in requested:
            if self.store.chapter_exists(novel_name, ref.index):
                existing += 1
                logger.info("跳过已存在章节 [%s] - %s", novel_name, ref.title)
                self._emit(f"跳过已存在章节 [{novel_name}] - {ref.title}", ProgressStatus.SKIPPED)
            else:
                pending.append(ref)

        return {
            "pending": pending,
            "cursor": 0,
            "existing": existing,
            "downloaded": 0,
            "failed": 0,
            "last_node": "fetch_chapter_list",
        }

    async def _fetch_chapter(self, ref: ChapterRef) -> tuple[ChapterRef, Optional[ChapterContent], Optional[Exception]]:
        try:
            content = await retry_fetch(
                lambda: self.adapter.fetch_chapter_body(ref),
                attempts=self.settings.max_retries,
                delay=self.settings.retry_delay,
                description=f"Chapter {ref.index} ({ref.title})",
            )
        except FetchError as e:
            return ref, None, e
        except Exception as e:
            # One broken chapter must not take the rest of the batch down
            logger.exception("Unexpected error fetching chapter %d (%s)", ref.index, ref.title)
            return ref, None, e
        finally:
            if self.settings.chapter_delay > 0:
                await asyncio.sleep(self.settings.chapter_delay)
        return ref, content, None

    async def download_batch(self, state: DownloadState) -> dict:
        """Fetch the next batch concurrently; write results one at a time."""
        logger.info("Entering node: download_batch")
        novel_name = state["novel_name"]
        pending = state["pending"]
        cursor = state.get("cursor", 0)
        batch = pending[cursor:cursor + self.settings.chapter_concurrency]

        downloaded = state.get("downloaded", 0)
        failed = state.get("failed", 0)

        for ref in batch:
            self._emit(f"下载 [{novel_name}] - {ref.title}")

        for next_done in asyncio.as_completed([self._fetch_chapter(ref) for ref in batch]):
            ref, content, error = await next_done
            if isinstance(error, FetchError):
                failed += 1
                logger.warning("Chapter %d of %s skipped after retries: %s", ref.index, novel_name, error)
                self._emit(f"章节下载失败，已跳过 [{novel_name}] - {ref.title}: {error}", ProgressStatus.SKIPPED)
                continue
            if error is not None:
                failed += 1
                self._emit(f"章节下载出错 [{novel_name}] - {ref.title}: {error}", ProgressStatus.ERROR)
                continue
            try:
                self.store.write_chapter(novel_name, content)
            except StoreError as e:
                failed += 1
                logger.error("Failed to save chapter %d of %s: %s", ref.index, novel_name, e)
                self._emit(f"保存章节失败 [{novel_name}] - {ref.title}: {e}", ProgressStatus.ERROR)
                continue
            downloaded += 1
            self._emit(f"已下载 [{novel_name}] - {ref.title}", ProgressStatus.COMPLETED)

        return {
            "cursor": cursor + len(batch),
            "downloaded": downloaded,
            "failed": failed,
            "last_node": "download_batch",
        }

    async def finalize(self, state: DownloadState) -> dict:
        """Log the per-novel summary."""
        logger.info("Entering node: finalize")
        logger.info(
            "《%s》下载统计: 新下载 %d 章, 跳过已存在 %d 章, 失败 %d 章",
            state.get("title", ""),
            state.get("downloaded", 0),
            state.get("existing", 0),
            state.get("failed", 0),
        )
        return {"last_node": "finalize"}

    async def handle_error(self, state: DownloadState) -> dict:
        """Unrecoverable job error: no retry left at this level."""
        logger.info("Entering node: handle_error")
        logger.error("Download error in %s: %s", state.get("last_node", "?"), state.get("error", "Unknown error"))
        return {"last_node": "handle_error"}


def build_download_graph(nodes: DownloadNodes):
    """Build and return the compiled single-novel download graph."""
    graph = StateGraph(DownloadState)

    graph.add_node("fetch_metadata", nodes.fetch_metadata)
    graph.add_node("fetch_chapter_list", nodes.fetch_chapter_list)
    graph.add_node("download_batch", nodes.download_batch)
    graph.add_node("finalize", nodes.finalize)
    graph.add_node("handle_error", nodes.handle_error)

    graph.set_entry_point("fetch_metadata")

    # Catalog failure -> error; zero budget -> finalize
    graph.add_conditional_edges(
        "fetch_metadata",
        route_after_metadata,
        {
            "fetch_chapter_list": "fetch_chapter_list",
            "finalize": "finalize",
            "handle_error": "handle_error",
        },
    )

    graph.add_conditional_edges(
        "fetch_chapter_list",
        route_after_chapter_list,
        {
            "download_batch": "download_batch",
            "finalize": "finalize",
            "handle_error": "handle_error",
        },
    )

    # Loop until every pending chapter was attempted
    graph.add_conditional_edges(
        "download_batch",
        route_after_batch,
        {
            "download_batch": "download_batch",
            "finalize": "finalize",
        },
    )

    graph.add_edge("finalize", END)
    graph.add_edge("handle_error", END)

    return graph.compile()


async def run_download_graph(nodes: DownloadNodes, novel_url: str, chapter_budget: int) -> dict:
    """Run the download graph and return the accumulated final state.

    Args:
        nodes: Job-bound node functions.
        novel_url: Novel landing page.
        chapter_budget: Number of chapters requested (0 = metadata only).
    """
    app = build_download_graph(nodes)
    initial_state: DownloadState = {
        "novel_url": novel_url,
        "chapter_budget": max(0, chapter_budget),
        "downloaded": 0,
        "existing": 0,
        "failed": 0,
        "error": "",
    }

    # One loop iteration per batch plus the fixed nodes
    batches = math.ceil(max(0, chapter_budget) / nodes.settings.chapter_concurrency)
    config = {"recursion_limit": max(25, batches + 10)}

    accumulated: dict = dict(initial_state)
    async for event in app.astream(initial_state, config=config):
        # Each event is {node_name: state_update_dict}
        for node_name, node_update in event.items():
            if isinstance(node_update, dict):
                accumulated.update(node_update)
            logger.debug("<- node: %s", node_name)
    return accumulated
