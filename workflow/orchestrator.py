"""Acquisition orchestrator: single-novel jobs and rank scans.

Owns the shared HTTP client and the (lazily launched) evasion layer for the
duration of a run. Use as an async context manager::

    async with Orchestrator(settings, callback=cb) as orch:
        report = await orch.run_single(Platform.FANQIE, url, 10)
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from config.exceptions import FetchError
from config.settings import Settings
from models.enums import Platform, ProgressStatus
from models.events import ProgressEvent
from models.job import DownloadJob
from models.store import LocalStore
from spiders import create_adapter
from spiders.base import SourceAdapter, build_http_client
from spiders.browser import EvasionLayer
from workflow.graph import DownloadNodes, run_download_graph
from workflow.retry import retry_fetch

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., SourceAdapter]


@dataclass
class JobReport:
    """Outcome of one single-novel job."""
    url: str
    title: str = ""
    novel_name: str = ""
    downloaded: int = 0
    existing: int = 0
    failed: int = 0
    success: bool = False
    error: str = ""


class Orchestrator:
    """Drives download jobs against a workspace.

    Args:
        settings: Retry, concurrency and evasion configuration.
        store: Target store. Defaults to one at ``settings.workspace_root``.
        callback: Receives ``ProgressEvent``s via ``on_progress``.
        adapter_factory: ``(platform, client, evasion=, evasion_visible=)``
            returning a SourceAdapter; replaceable in tests.
        http_client: Shared client; created (and closed) by the orchestrator
            when omitted.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[LocalStore] = None,
        callback=None,
        adapter_factory: AdapterFactory = create_adapter,
        http_client: Optional[httpx.AsyncClient] = None,
        evasion: Optional[EvasionLayer] = None,
    ):
        self.settings = settings
        self.store = store or LocalStore(settings.workspace_root)
        self.callback = callback
        self._adapter_factory = adapter_factory
        self._client = http_client
        self._owns_client = http_client is None
        self._evasion = evasion
        self._owns_evasion = evasion is None

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_evasion and self._evasion is not None:
            await self._evasion.close()
            self._evasion = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ---- Resources ----

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_http_client(self.settings)
        return self._client

    @property
    def evasion(self) -> Optional[EvasionLayer]:
        if self._evasion is None and self.settings.evasion_enabled:
            # The browser itself only starts on first use
            self._evasion = EvasionLayer(self.settings)
        return self._evasion

    def adapter_for(self, platform: Platform, evasion_visible: Optional[bool] = None) -> SourceAdapter:
        visible = self.settings.evasion_visible if evasion_visible is None else evasion_visible
        return self._adapter_factory(
            platform,
            self.client,
            evasion=self.evasion,
            evasion_visible=visible,
        )

    def _emit(self, message: str, status: ProgressStatus = ProgressStatus.RUNNING) -> None:
        if self.callback is not None:
            self.callback.on_progress(ProgressEvent(message=message, status=status))

    # ---- Jobs ----

    async def run(self, job: DownloadJob):
        """Dispatch a DownloadJob: a JobReport, or a list of them for a rank scan."""
        platform = Platform.parse(job.platform)
        store = self._store_for(job.workspace_root)
        if job.is_rank_scan:
            return await self.run_rank_scan(
                platform, job.target, job.max_novels, job.chapter_budget, job.evasion_visible, store=store,
            )
        return await self.run_single(platform, job.target, job.chapter_budget, job.evasion_visible, store=store)

    def _store_for(self, workspace_root) -> LocalStore:
        if Path(workspace_root).resolve() == self.store.workspace_root.resolve():
            return self.store
        return LocalStore(workspace_root)

    async def run_single(
        self,
        platform: "Platform | str",
        url: str,
        chapter_count: int,
        evasion_visible: Optional[bool] = None,
        store: Optional[LocalStore] = None,
    ) -> JobReport:
        """Download up to ``chapter_count`` chapters of one novel.

        Emits per-chapter events and one terminal ``completed``/``error`` event.
        ``store`` overrides the orchestrator's store for this job.

        Raises:
            ConfigurationError: Unsupported platform or unprepared workspace.
        """
        adapter = self.adapter_for(Platform.parse(platform), evasion_visible)
        store = store or self.store
        store.check_ready()
        report = await self._download_novel(adapter, store, url, chapter_count)
        self._emit_terminal(report)
        return report

    async def _download_novel(
        self,
        adapter: SourceAdapter,
        store: LocalStore,
        url: str,
        chapter_count: int,
    ) -> JobReport:
        nodes = DownloadNodes(adapter, store, self.settings, callback=self.callback)
        state = await run_download_graph(nodes, url, chapter_count)

        report = JobReport(
            url=url,
            title=state.get("title", ""),
            novel_name=state.get("novel_name", ""),
            downloaded=state.get("downloaded", 0),
            existing=state.get("existing", 0),
            failed=state.get("failed", 0),
            error=state.get("error", ""),
        )
        if report.error:
            report.success = False
        elif report.failed and not (report.downloaded or report.existing):
            # Chapters were due but none made it to disk
            report.success = False
            report.error = f"《{report.title}》所有章节下载失败"
        else:
            report.success = True
        return report

    def _emit_terminal(self, report: JobReport) -> None:
        if report.success:
            msg = f"《{report.title}》下载完成!"
            logger.info(msg)
            self._emit(msg, ProgressStatus.COMPLETED)
        else:
            msg = f"Error: {report.error}"
            logger.error(msg)
            self._emit(msg, ProgressStatus.ERROR)

    async def run_rank_scan(
        self,
        platform: "Platform | str",
        rank_url: str,
        max_novels: int,
        count_per_novel: int,
        evasion_visible: Optional[bool] = None,
        store: Optional[LocalStore] = None,
    ) -> list[JobReport]:
        """Download ``count_per_novel`` chapters for each of the top novels.

        Novel jobs run under a semaphore of ``rank_concurrency``; a failure in
        one never aborts its siblings.

        Raises:
            ConfigurationError: Unsupported platform or unprepared workspace.
        """
        adapter = self.adapter_for(Platform.parse(platform), evasion_visible)
        store = store or self.store
        store.check_ready()
        self._emit("开始分析榜单...")

        try:
            entries = await retry_fetch(
                lambda: adapter.fetch_rank_list(rank_url, max_novels),
                attempts=self.settings.max_retries,
                delay=self.settings.retry_delay,
                description=f"Rank list fetch for {rank_url}",
            )
        except FetchError as e:
            msg = f"榜单获取失败: {e}"
            logger.error(msg)
            self._emit(msg, ProgressStatus.ERROR)
            return []

        targets = entries[:max_novels]
        total = len(targets)
        self._emit(f"分析完成，准备抓取前 {total} 本小说...")

        semaphore = asyncio.Semaphore(self.settings.rank_concurrency)

        async def run_one(position: int, entry) -> JobReport:
            async with semaphore:
                self._emit(f"正在处理 [{position}/{total}] {entry.title or entry.url}")
                try:
                    report = await self._download_novel(adapter, store, entry.url, count_per_novel)
                except Exception as e:
                    logger.exception("Novel job for %s failed", entry.url)
                    report = JobReport(url=entry.url, title=entry.title, error=str(e))
                if report.success:
                    self._emit_terminal(report)
                else:
                    msg = f"Skipped one: {report.error}"
                    logger.warning(msg)
                    self._emit(msg, ProgressStatus.ERROR)
                return report

        reports = await asyncio.gather(*(run_one(i, entry) for i, entry in enumerate(targets, start=1)))

        succeeded = sum(1 for r in reports if r.success)
        logger.info("Rank scan finished: %d/%d novels succeeded", succeeded, total)
        self._emit("榜单扫描全部完成!", ProgressStatus.COMPLETED)
        return list(reports)
