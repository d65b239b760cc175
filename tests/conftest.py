"""Shared pytest fixtures for the novelscout test suite."""

import json

import pytest
from unittest.mock import MagicMock


# ---------------------------------------------------------------------------
# Settings / workspace fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def workspace(tmp_path):
    """Return a prepared workspace root (downloads/ and logs/ exist)."""
    from models.store import ensure_workspace_dirs
    root = tmp_path / "workspace"
    ensure_workspace_dirs(root)
    return root


@pytest.fixture
def settings(workspace, tmp_path):
    """Return a Settings instance pointing at the temp workspace, without delays."""
    from config.settings import Settings
    return Settings(
        workspace_root=workspace,
        browser_user_data_dir=tmp_path / "browser",
        max_retries=3,
        retry_delay=0,
        chapter_delay=0,
        chapter_concurrency=2,
        rank_concurrency=2,
        evasion_enabled=False,
        ai_api_base="https://api.example.com/v1",
        ai_api_key="sk-test",
        ai_model="test-model",
        auto_analysis_prompt="",
        chapter_prompt="",
    )


@pytest.fixture
def store(workspace):
    from models.store import LocalStore
    return LocalStore(workspace)


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_metadata():
    from models.novel import NovelMetadata
    return NovelMetadata(
        title="测试小说",
        url="https://fanqienovel.com/page/100",
        tags=["都市", "系统"],
        word_count="52.3万字",
        description="这是一本测试小说的简介",
    )


@pytest.fixture
def sample_analysis():
    from models.novel import AnalysisResult
    return AnalysisResult(
        genre="都市/系统",
        style="轻松搞笑",
        goldfinger="签到系统",
        opening="主角意外获得签到系统，从此逆袭。",
        highlights="打脸爽快，节奏明快",
    )


@pytest.fixture
def stored_novel(store, sample_metadata):
    """A novel with info.json and three chapter files; returns its directory name."""
    from models.chapter import ChapterContent, ChapterRef
    name = store.save_catalog_metadata(sample_metadata)
    for i in range(1, 4):
        ref = ChapterRef(index=i, title=f"第{i}章", source_url=f"https://fanqienovel.com/reader/{i}")
        store.write_chapter(name, ChapterContent(ref=ref, body=f"第{i}章正文内容。"))
    return name


# ---------------------------------------------------------------------------
# Fake adapter
# ---------------------------------------------------------------------------

class FakeAdapter:
    """In-memory SourceAdapter stand-in.

    ``novels`` maps novel URL -> (title, chapter count). Individual fetches can
    be made to fail via the ``fail_*`` sets.
    """

    def __init__(self, novels=None, rank=None):
        self.novels = novels or {}
        self.rank = rank or []
        self.fail_metadata = set()
        self.fail_chapters = set()
        self.calls = {"metadata": 0, "chapter_list": 0, "chapter_body": 0, "rank": 0}

    async def fetch_catalog_metadata(self, url):
        from config.exceptions import FetchError
        from models.novel import NovelMetadata
        self.calls["metadata"] += 1
        if url in self.fail_metadata or url not in self.novels:
            raise FetchError("HTTP 503", url)
        title, _ = self.novels[url]
        return NovelMetadata(title=title, url=url, tags=["玄幻"], word_count="10万字", description="简介")

    async def fetch_chapter_list(self, url):
        from models.chapter import ChapterRef
        self.calls["chapter_list"] += 1
        _, count = self.novels[url]
        return [
            ChapterRef(index=i, title=f"第{i}章", source_url=f"{url}/ch/{i}")
            for i in range(1, count + 1)
        ]

    async def fetch_chapter_body(self, ref):
        from config.exceptions import SourceFormatError
        from models.chapter import ChapterContent
        self.calls["chapter_body"] += 1
        if ref.source_url in self.fail_chapters:
            raise SourceFormatError(".content", ref.source_url)
        return ChapterContent(ref=ref, body=f"{ref.title}的正文")

    async def fetch_rank_list(self, url, max_novels):
        from models.novel import RankEntry
        self.calls["rank"] += 1
        return [RankEntry(title=t, url=u) for t, u in self.rank][:max_novels]


@pytest.fixture
def fake_adapter():
    return FakeAdapter(novels={"https://example.com/book/1": ("第一本书", 2)})


@pytest.fixture
def adapter_factory(fake_adapter):
    """Adapter factory returning ``fake_adapter`` for any platform."""
    factory = MagicMock(return_value=fake_adapter)
    return factory


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def sse_body(*contents: str, done: bool = True) -> bytes:
    """Build an OpenAI-style event stream with one delta per content."""
    lines = []
    for content in contents:
        payload = {"choices": [{"delta": {"content": content}}]}
        lines.append(f"data: {json.dumps(payload, ensure_ascii=False)}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")
