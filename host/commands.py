"""Command host: the request/response surface over the acquisition and analysis core.

Every operation validates its inputs synchronously. Long-running operations
then spawn an asyncio task and return an acknowledgement right away; their
progress and terminal outcome reach the caller only through ``emit``, as
``(topic, payload)`` pairs on the ``download-progress``, ``ai-analysis`` and
``ai-analysis-status`` topics.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from config.exceptions import ConfigurationError, EntryNotFoundError, NovelScoutError, StoreError
from config.logging_config import clear_log, read_log
from config.settings import Settings
from models.enums import AnalysisState, Platform, ProgressStatus
from models.events import AnalysisStatusEvent, ProgressEvent
from models.job import AnalysisRequest
from models.store import LocalStore, ensure_workspace_dirs
from spiders import create_adapter
from tools.ai_client import AnalysisEngine
from tools.prompts import get_auto_analysis_prompt, resolve_chapter_prompt
from workflow.analysis import analyze_novel
from workflow.callbacks import TopicEmitterCallback
from workflow.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

EmitFn = Callable[[str, dict], None]


class CommandHost:
    """Implements the host commands against one workspace.

    Args:
        settings: Workspace, fetch and AI configuration.
        emit: Event sink receiving ``(topic, payload)``.
        engine: Analysis engine; built from ``settings`` when omitted.
        adapter_factory: Passed through to the orchestrator.
    """

    def __init__(
        self,
        settings: Settings,
        emit: EmitFn,
        engine: Optional[AnalysisEngine] = None,
        adapter_factory=create_adapter,
    ):
        self.settings = settings
        self.store = LocalStore(settings.workspace_root)
        self.events = TopicEmitterCallback(emit)
        self.engine = engine or AnalysisEngine(settings)
        self._adapter_factory = adapter_factory
        self._tasks: set[asyncio.Task] = set()

    # ---- Background tasks ----

    def _spawn(self, coro: Awaitable, on_failure: Callable[[str], None]) -> asyncio.Task:
        async def runner():
            try:
                await coro
            except NovelScoutError as e:
                logger.error("Background task failed: %s", e)
                on_failure(f"Error: {e}")
            except Exception as e:
                logger.exception("Unexpected error in background task")
                on_failure(f"Error: {e}")

        task = asyncio.create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _download_failed(self, message: str) -> None:
        self.events.on_progress(ProgressEvent(message=message, status=ProgressStatus.ERROR))

    def _analysis_failed(self, message: str) -> None:
        self.events.on_status(AnalysisStatusEvent(message=message, status=AnalysisState.FAILED))

    async def wait(self) -> None:
        """Wait for every spawned task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _orchestrator(self) -> Orchestrator:
        return Orchestrator(
            self.settings,
            store=self.store,
            callback=self.events,
            adapter_factory=self._adapter_factory,
        )

    # ---- Downloads ----

    async def start_download(
        self,
        url: str,
        count: int,
        platform: "Platform | str",
        evasion_visible: Optional[bool] = None,
    ) -> str:
        """Start a single-novel download in the background.

        Raises:
            ConfigurationError: Empty URL, unsupported platform, or workspace
                without ``downloads/``.
        """
        if not url.strip():
            raise ConfigurationError("请输入小说链接")
        platform = Platform.parse(platform)
        self.store.check_ready()

        async def job():
            async with self._orchestrator() as orchestrator:
                await orchestrator.run_single(platform, url.strip(), count, evasion_visible)

        self._spawn(job(), self._download_failed)
        logger.info("Download task started: %s (%s, %d chapters)", url, platform.value, count)
        return "Task started"

    async def scan_and_download_rank(
        self,
        rank_url: str,
        max_novels: int,
        count_per_novel: int,
        platform: "Platform | str",
        evasion_visible: Optional[bool] = None,
    ) -> str:
        """Start a rank scan in the background.

        Raises:
            ConfigurationError: Empty URL, unsupported platform, or workspace
                without ``downloads/``.
        """
        if not rank_url.strip():
            raise ConfigurationError("请输入榜单链接")
        platform = Platform.parse(platform)
        self.store.check_ready()

        async def job():
            async with self._orchestrator() as orchestrator:
                await orchestrator.run_rank_scan(
                    platform, rank_url.strip(), max_novels, count_per_novel, evasion_visible,
                )

        self._spawn(job(), self._download_failed)
        logger.info("Rank scan started: %s (%s, top %d x %d chapters)", rank_url, platform.value, max_novels, count_per_novel)
        return "Batch task started"

    # ---- Analysis ----

    async def start_ai_analysis(
        self,
        content: str,
        prompt: str = "",
        response_json: bool = False,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        """Stream an analysis of ``content`` in the background.

        An empty ``prompt`` uses the chapter (split) prompt. Endpoint values
        default to the settings.

        Raises:
            ConfigurationError: Endpoint not configured.
        """
        request = AnalysisRequest(
            api_base=self.settings.ai_api_base if api_base is None else api_base,
            api_key=self.settings.ai_api_key if api_key is None else api_key,
            model=self.settings.ai_model if model is None else model,
            prompt=resolve_chapter_prompt(prompt, self.settings),
            content=content,
            wants_json=response_json,
        )
        self.engine.validate_request(request)
        self._spawn(self.engine.run(request, self.events), self._analysis_failed)
        return "Analysis started"

    async def analyze_novel(self, novel_name: str) -> str:
        """Run the automatic opening-chapters analysis of a stored novel.

        Raises:
            ConfigurationError: Endpoint not configured.
            EntryNotFoundError: The novel has no info.json.
        """
        self.engine.validate_request(AnalysisRequest(
            api_base=self.settings.ai_api_base,
            api_key=self.settings.ai_api_key,
            model=self.settings.ai_model,
            prompt="",
            content="",
        ))
        if self.store.read_metadata(novel_name) is None:
            raise EntryNotFoundError("info.json not found", str(self.store.metadata_path(novel_name)))
        self._spawn(
            analyze_novel(self.settings, self.store, novel_name, engine=self.engine, callback=self.events),
            self._analysis_failed,
        )
        return "Analysis started"

    async def fetch_ai_models(self, api_base: Optional[str] = None, api_key: Optional[str] = None) -> list[str]:
        return await self.engine.fetch_models(
            self.settings.ai_api_base if api_base is None else api_base,
            self.settings.ai_api_key if api_key is None else api_key,
        )

    def get_auto_analysis_prompt(self) -> str:
        return get_auto_analysis_prompt()

    # ---- Store ----

    def get_file_tree(self) -> list[dict]:
        return [node.to_dict() for node in self.store.get_file_tree()]

    def get_file_content(self, relative_path: str) -> str:
        return self.store.read_file(relative_path)

    def export_chapter(self, novel_title: str, chapter_index: int, content: str) -> str:
        return str(self.store.export_chapter(novel_title, chapter_index, content))

    def update_novel_metadata(self, novel_name: str, metadata: dict) -> str:
        """Shallow-merge ``metadata`` into an existing info.json."""
        if not isinstance(metadata, dict):
            raise StoreError("metadata 必须是 JSON 对象")
        self.store.merge_metadata(novel_name, metadata, create=False)
        logger.info("Updated metadata of %s: %s", novel_name, sorted(metadata))
        return "Metadata updated"

    def delete_novel(self, novel_name: str) -> str:
        self.store.delete_novel(novel_name)
        logger.info("已删除小说: %s", novel_name)
        return f"已删除《{novel_name}》"

    def delete_chapter(self, novel_name: str, chapter_file: str) -> str:
        self.store.delete_chapter(novel_name, chapter_file)
        logger.info("已删除章节: %s/%s", novel_name, chapter_file)
        return f"已删除章节: {chapter_file}"

    # ---- Workspace ----

    def ensure_workspace_dirs(self) -> str:
        ensure_workspace_dirs(self.settings.workspace_root)
        return "Workspace directories created"

    def read_log_file(self) -> str:
        return read_log(self.settings.log_dir)

    def clear_log(self) -> str:
        clear_log(self.settings.log_dir)
        return "日志已清空"
