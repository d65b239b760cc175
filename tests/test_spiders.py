"""Tests for source adapters: markup parsing, page procurement and the registry."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock


FANQIE_BOOK_HTML = """
<html><head><title>测试小说_番茄小说</title>
<meta name="description" content="meta 简介"></head>
<body>
  <div class="info-name"><h1>测试小说</h1></div>
  <div class="info-label"><span>都市</span><span>系统</span><span> 都市 </span></div>
  <div class="info-count-word"><span class="detail">52.3</span><span class="text">万字</span></div>
  <div class="page-abstract-content"><p>第一段简介</p><p>第二段简介</p></div>
  <div class="chapter">
    <div class="chapter-item"><a class="chapter-item-title" href="/reader/3">最新：第3章 风起</a></div>
    <div class="chapter-item"><a class="chapter-item-title" href="/reader/1">第1章 开端</a></div>
    <div class="chapter-item"><a class="chapter-item-title" href="/reader/2">第2章 相遇</a></div>
    <div class="chapter-item"><a class="chapter-item-title" href="javascript:void(0)">VIP</a></div>
    <div class="chapter-item"><a class="chapter-item-title" href="/reader/3">第3章 风起</a></div>
  </div>
</body></html>
"""

FANQIE_READER_HTML = """
<html><head><title>第1章 开端</title></head><body>
  <div class="muye-reader-content"><p>  第一段　正文 </p><p></p><p>第二段正文</p></div>
</body></html>
"""

FANQIE_RANK_HTML = "<html><body>" + "".join(
    f'<div class="rank-book-item"><a href="/page/{i}"><img></a>'
    f'<div class="title"><a href="/page/{i}">榜单书{i}</a></div></div>'
    for i in range(1, 6)
) + "</body></html>"

QIDIAN_BOOK_HTML = """
<html><head><title>起点书_作者_起点中文网</title></head><body>
  <h1 id="bookName">起点书</h1>
  <p class="book-attribute"><a>连载</a><a>都市</a></p>
  <div class="all-label"><a>系统流</a><a>都市</a></div>
  <p class="count"><em>120.5万字</em></p>
  <p id="book-intro-detail">一段简介</p>
</body></html>
"""

QIDIAN_CATALOG_HTML = """
<html><body><ul>
  <li class="y-list__item"><a href="//m.qidian.com/chapter/100/1/">第一章 起</a></li>
  <li class="y-list__item"><a href="//m.qidian.com/chapter/100/2/">第二章 承</a></li>
  <li class="y-list__item"><a href="//m.qidian.com/book/100/">作品信息</a></li>
</ul></body></html>
"""

QIDIAN_RANK_HTML = '<html><body><div id="rank-view-list">' + "".join(
    f'<div class="book-mid-info"><h2><a href="//www.qidian.com/book/{i}/">起点榜{i}</a></h2></div>'
    for i in range(1, 6)
) + "</div></body></html>"


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _fanqie(client=None, evasion=None, visible=False):
    from spiders.fanqie import FanqieAdapter
    return FanqieAdapter(client or MagicMock(), evasion=evasion, evasion_visible=visible)


def _qidian(client=None, evasion=None):
    from spiders.qidian import QidianAdapter
    return QidianAdapter(client or MagicMock(), evasion=evasion)


class TestFanqieParsing:
    def test_parse_catalog(self):
        meta = _fanqie().parse_catalog(FANQIE_BOOK_HTML, "https://fanqienovel.com/page/100")
        assert meta.title == "测试小说"
        assert meta.tags == ["都市", "系统"]
        assert meta.word_count == "52.3万字"
        assert meta.description == "第一段简介\n\n第二段简介"
        assert meta.ai_analysis is None

    def test_catalog_without_title_is_format_error(self):
        from config.exceptions import SourceFormatError
        with pytest.raises(SourceFormatError):
            _fanqie().parse_catalog("<html><body>nothing</body></html>", "https://fanqienovel.com/page/1")

    def test_chapter_list_numbers_from_one_and_later_duplicate_wins(self):
        refs = _fanqie().parse_chapter_list(FANQIE_BOOK_HTML, "https://fanqienovel.com/page/100")
        assert [r.index for r in refs] == [1, 2, 3]
        assert [r.title for r in refs] == ["第1章 开端", "第2章 相遇", "第3章 风起"]
        assert refs[0].source_url == "https://fanqienovel.com/reader/1"

    def test_empty_chapter_list_is_format_error(self):
        from config.exceptions import SourceFormatError
        with pytest.raises(SourceFormatError, match="No chapters"):
            _fanqie().parse_chapter_list("<html></html>", "https://fanqienovel.com/page/1")

    def test_parse_chapter_body(self):
        from models.chapter import ChapterRef
        ref = ChapterRef(1, "第1章 开端", "https://fanqienovel.com/reader/1")
        content = _fanqie().parse_chapter(FANQIE_READER_HTML, ref)
        assert content.body == "第一段 正文\n\n第二段正文"
        assert content.ref is ref

    def test_missing_chapter_container(self):
        from config.exceptions import SourceFormatError
        from models.chapter import ChapterRef
        ref = ChapterRef(1, "t", "https://fanqienovel.com/reader/1")
        with pytest.raises(SourceFormatError):
            _fanqie().parse_chapter("<html><body><p>x</p></body></html>", ref)

    def test_rank_list_keeps_order_and_truncates(self):
        entries = _fanqie().parse_rank_list(FANQIE_RANK_HTML, "https://fanqienovel.com/rank/1_2_1141", 2)
        assert [e.title for e in entries] == ["榜单书1", "榜单书2"]
        assert entries[0].url == "https://fanqienovel.com/page/1"

    def test_rank_list_zero_max_is_empty(self):
        assert _fanqie().parse_rank_list("<html></html>", "https://fanqienovel.com/rank/x", 0) == []


class TestQidianParsing:
    def test_extract_book_id(self):
        from spiders.qidian import extract_book_id
        assert extract_book_id("https://www.qidian.com/book/1035420986/") == "1035420986"

    def test_extract_book_id_rejects_other_urls(self):
        from config.exceptions import SourceFormatError
        from spiders.qidian import extract_book_id
        with pytest.raises(SourceFormatError):
            extract_book_id("https://www.qidian.com/rank/")

    def test_parse_catalog_merges_tags(self):
        meta = _qidian().parse_catalog(QIDIAN_BOOK_HTML, "https://www.qidian.com/book/100/")
        assert meta.title == "起点书"
        assert meta.tags == ["连载", "都市", "系统流"]
        assert meta.word_count == "120.5万字"
        assert meta.description == "一段简介"

    def test_waf_title_is_challenge(self):
        from config.exceptions import ChallengeDetectedError
        html = "<html><head><title>Just a moment...</title></head><body></body></html>"
        with pytest.raises(ChallengeDetectedError):
            _qidian().parse_catalog(html, "https://www.qidian.com/book/100/")

    def test_chapter_list_only_chapter_links(self):
        refs = _qidian().parse_chapter_list(QIDIAN_CATALOG_HTML, "https://m.qidian.com/book/100/catalog")
        assert [(r.index, r.title) for r in refs] == [(1, "第一章 起"), (2, "第二章 承")]
        assert refs[1].source_url == "https://m.qidian.com/chapter/100/2/"

    def test_parse_chapter(self):
        from models.chapter import ChapterRef
        html = '<html><body><h3 class="j_chapterName">第一章 起</h3><main class="content"><p>正文一</p><p>正文二</p></main></body></html>'
        ref = ChapterRef(1, "第一章 起", "https://www.qidian.com/chapter/100/1/")
        assert _qidian().parse_chapter(html, ref).body == "正文一\n\n正文二"

    def test_rank_list_truncates_in_document_order(self):
        entries = _qidian().parse_rank_list(QIDIAN_RANK_HTML, "https://www.qidian.com/rank/yuepiao/", 3)
        assert [e.title for e in entries] == ["起点榜1", "起点榜2", "起点榜3"]
        assert entries[0].url == "https://www.qidian.com/book/1/"


class TestPageProcurement:
    @pytest.mark.asyncio
    async def test_plain_fetch(self):
        async with _client(lambda request: httpx.Response(200, text="<html><title>书</title>ok</html>")) as client:
            html = await _fanqie(client).get_html("https://fanqienovel.com/page/1")
        assert "ok" in html

    @pytest.mark.asyncio
    async def test_challenge_status_without_browser(self):
        from config.exceptions import ChallengeDetectedError
        async with _client(lambda request: httpx.Response(403, text="denied")) as client:
            with pytest.raises(ChallengeDetectedError):
                await _fanqie(client).get_html("https://fanqienovel.com/page/1")

    @pytest.mark.asyncio
    async def test_server_error_is_retryable_fetch_error(self):
        from config.exceptions import ChallengeDetectedError, FetchError
        async with _client(lambda request: httpx.Response(500, text="<title>oops</title>server error")) as client:
            with pytest.raises(FetchError) as exc_info:
                await _fanqie(client).get_html("https://fanqienovel.com/page/1")
        assert not isinstance(exc_info.value, ChallengeDetectedError)
        assert exc_info.value.details["status"] == 500

    @pytest.mark.asyncio
    async def test_transport_error_is_fetch_error(self):
        from config.exceptions import FetchError

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(FetchError, match="Request failed"):
                await _fanqie(client).get_html("https://fanqienovel.com/page/1")

    @pytest.mark.asyncio
    async def test_challenge_page_falls_back_to_browser(self):
        evasion = MagicMock()
        evasion.fetch_document = AsyncMock(return_value="<html>rendered</html>")
        async with _client(lambda request: httpx.Response(200, text="<title>Just a moment...</title>")) as client:
            html = await _fanqie(client, evasion).get_html("https://fanqienovel.com/page/1", (".info-name",))
        assert html == "<html>rendered</html>"
        evasion.fetch_document.assert_awaited_once()
        assert evasion.fetch_document.call_args.kwargs["ready_selectors"] == (".info-name",)

    @pytest.mark.asyncio
    async def test_visible_mode_skips_plain_fetch(self):
        evasion = MagicMock()
        evasion.fetch_document = AsyncMock(return_value="<html>manual</html>")
        client = MagicMock()
        client.get = AsyncMock()
        html = await _fanqie(client, evasion, visible=True).get_html("https://fanqienovel.com/page/1")
        assert html == "<html>manual</html>"
        client.get.assert_not_called()
        assert evasion.fetch_document.call_args.kwargs["visible"] is True

    @pytest.mark.asyncio
    async def test_fanqie_fetch_chapter_list_end_to_end(self):
        async with _client(lambda request: httpx.Response(200, text=FANQIE_BOOK_HTML)) as client:
            refs = await _fanqie(client).fetch_chapter_list("https://fanqienovel.com/page/100")
        assert len(refs) == 3

    @pytest.mark.asyncio
    async def test_qidian_metadata_falls_back_to_mobile_page(self):
        mobile_html = '<html><body><h1>手机版书名</h1><div class="book-intro">手机简介</div></body></html>'

        def handler(request):
            if request.url.host == "m.qidian.com":
                return httpx.Response(200, text=mobile_html)
            return httpx.Response(202, text="<title>Just a moment...</title>")

        async with _client(handler) as client:
            meta = await _qidian(client).fetch_catalog_metadata("https://www.qidian.com/book/100/")
        assert meta.title == "手机版书名"
        assert meta.url == "https://m.qidian.com/book/100"
        assert meta.description == "手机简介"


class TestRegistry:
    def test_create_adapter_by_name(self):
        from spiders import create_adapter
        from spiders.qidian import QidianAdapter
        adapter = create_adapter("qidian", MagicMock())
        assert isinstance(adapter, QidianAdapter)
        assert adapter.name == "qidian"

    def test_unknown_platform(self):
        from config.exceptions import ConfigurationError
        from spiders import get_adapter_class
        with pytest.raises(ConfigurationError):
            get_adapter_class("zongheng")

    def test_absolute_url(self):
        adapter = _fanqie()
        assert adapter.absolute_url("//cdn.example.com/a") == "https://cdn.example.com/a"
        assert adapter.absolute_url("/page/1") == "https://fanqienovel.com/page/1"

    def test_number_chapters_later_position_wins(self):
        from spiders.base import SourceAdapter
        refs = SourceAdapter.number_chapters([("a", "u1"), ("b", "u2"), ("a2", "u1")])
        assert [(r.index, r.title, r.source_url) for r in refs] == [(1, "b", "u2"), (2, "a2", "u1")]
