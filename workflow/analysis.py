"""Analysis pipelines: automatic novel analysis and per-chapter split analysis."""

import logging
from typing import Optional

from config.exceptions import EntryNotFoundError, ExtractionError, UpstreamAnalysisError
from config.settings import Settings
from models.job import AnalysisRequest
from models.novel import AI_ANALYSIS_KEY, AnalysisResult
from models.store import LocalStore
from tools.ai_client import AnalysisEngine, AnalysisSession
from tools.prompts import resolve_auto_prompt, resolve_chapter_prompt

logger = logging.getLogger(__name__)


def build_request(settings: Settings, prompt: str, content: str, wants_json: bool = False) -> AnalysisRequest:
    return AnalysisRequest(
        api_base=settings.ai_api_base,
        api_key=settings.ai_api_key,
        model=settings.ai_model,
        prompt=prompt,
        content=content,
        wants_json=wants_json,
    )


async def analyze_novel(
    settings: Settings,
    store: LocalStore,
    novel_name: str,
    engine: Optional[AnalysisEngine] = None,
    callback=None,
) -> Optional[AnalysisResult]:
    """Analyze a novel's opening chapters and merge the result as aiAnalysis.

    Args:
        settings: AI endpoint and prompt configuration.
        store: Store holding the novel.
        novel_name: Novel directory name.
        engine: Analysis engine; one is created from ``settings`` if omitted.
        callback: Receives chunk and status events.

    Returns:
        The merged AnalysisResult, or None when the request failed upstream or
        no complete result could be extracted. In both cases info.json is left
        untouched.

    Raises:
        ConfigurationError: AI endpoint not configured.
        EntryNotFoundError: No info.json or no chapters for the novel.
    """
    if store.read_metadata(novel_name) is None:
        raise EntryNotFoundError("info.json not found", str(store.metadata_path(novel_name)))
    excerpt = store.build_excerpt(novel_name, settings.auto_analysis_chapters)
    if not excerpt:
        raise EntryNotFoundError("没有可分析的章节", str(store.novel_path(novel_name)))

    engine = engine or AnalysisEngine(settings)
    request = build_request(settings, resolve_auto_prompt(settings), excerpt, wants_json=True)
    logger.info("Auto analysis for %s (%d chars of excerpt)", novel_name, len(excerpt))

    try:
        result = await engine.analyze_json(request, callback)
    except UpstreamAnalysisError as e:
        logger.error("Auto analysis for %s failed: %s", novel_name, e)
        return None
    except ExtractionError as e:
        logger.error("Auto analysis for %s returned no usable JSON: %s", novel_name, e)
        return None

    store.merge_metadata(novel_name, {AI_ANALYSIS_KEY: result.to_dict()}, create=False)
    logger.info("Saved aiAnalysis for %s (genre=%s)", novel_name, result.genre)
    return result


async def split_chapter(
    settings: Settings,
    content: str,
    prompt: str = "",
    engine: Optional[AnalysisEngine] = None,
    callback=None,
) -> AnalysisSession:
    """Stream an outline reconstruction of one chapter.

    An empty ``prompt`` falls back to the configured chapter prompt, then to
    the built-in one.
    """
    engine = engine or AnalysisEngine(settings)
    request = build_request(settings, resolve_chapter_prompt(prompt, settings), content)
    return await engine.run(request, callback)
