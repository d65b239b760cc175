"""Fanqie Novel (fanqienovel.com) source adapter.

Book page : https://fanqienovel.com/page/<book_id>   (metadata + chapter list)
Reader    : https://fanqienovel.com/reader/<chapter_id>
Rank      : https://fanqienovel.com/rank/<gender>_<type>_<category>
"""

import logging

from bs4 import BeautifulSoup

from config.exceptions import SourceFormatError
from models.chapter import ChapterContent, ChapterRef
from models.enums import Platform
from models.novel import NovelMetadata, RankEntry, UNKNOWN_WORD_COUNT
from spiders.base import SourceAdapter

logger = logging.getLogger(__name__)

_TITLE_SEL = ".info-name h1, .info-name"
_TAG_SEL = ".info-label span, .info-label a"
_WORD_COUNT_SEL = ".info-count-word"
_DESCRIPTION_SEL = ".page-abstract-content"
_CHAPTER_LINK_SEL = "a.chapter-item-title, .chapter-item a[href*='/reader/']"
_CONTENT_SEL = ".muye-reader-content, .muye-reader-box"
_RANK_LINK_SEL = ".rank-book-item .title a, .rank-book-item a[href*='/page/']"

_BOOK_READY = (".info-name", ".chapter-item")
_READER_READY = (".muye-reader-content",)
_RANK_READY = (".rank-book-item",)


class FanqieAdapter(SourceAdapter):
    """Plain-HTTP adapter; the browser is only used when a challenge appears."""

    platform = Platform.FANQIE
    base_url = "https://fanqienovel.com"
    challenge_signatures = ("verify.snssdk.com", "captcha-verify")

    # ---- Fetch ----

    async def fetch_catalog_metadata(self, url: str) -> NovelMetadata:
        html = await self.get_html(url, _BOOK_READY)
        return self.parse_catalog(html, url)

    async def fetch_chapter_list(self, url: str) -> list[ChapterRef]:
        html = await self.get_html(url, _BOOK_READY)
        return self.parse_chapter_list(html, url)

    async def fetch_chapter_body(self, ref: ChapterRef) -> ChapterContent:
        html = await self.get_html(ref.source_url, _READER_READY)
        return self.parse_chapter(html, ref)

    async def fetch_rank_list(self, url: str, max_novels: int) -> list[RankEntry]:
        html = await self.get_html(url, _RANK_READY)
        return self.parse_rank_list(html, url, max_novels)

    # ---- Parse ----

    def parse_catalog(self, html: str, url: str) -> NovelMetadata:
        soup = BeautifulSoup(html, "html.parser")
        title = self.text_of(self.require(soup.select_one(_TITLE_SEL), _TITLE_SEL, url))
        if not title:
            raise SourceFormatError(_TITLE_SEL, url, "Empty novel title")

        tags = self.unique_tags([t.get_text(strip=True) for t in soup.select(_TAG_SEL)])

        # <div class="info-count-word"><span class="detail">52.3</span><span class="text">万字</span>
        word_count_tag = soup.select_one(_WORD_COUNT_SEL)
        word_count = self.text_of(word_count_tag).replace(" ", "") or UNKNOWN_WORD_COUNT

        description_tag = soup.select_one(_DESCRIPTION_SEL)
        description = self.paragraphs_text(description_tag) if description_tag is not None else ""
        if not description:
            meta = soup.select_one("meta[name='description']")
            description = meta.get("content", "").strip() if meta is not None else ""

        return NovelMetadata(
            title=title,
            url=url,
            tags=tags,
            word_count=word_count,
            description=description,
        )

    def parse_chapter_list(self, html: str, url: str) -> list[ChapterRef]:
        soup = BeautifulSoup(html, "html.parser")
        entries = []
        for link in soup.select(_CHAPTER_LINK_SEL):
            href = link.get("href", "")
            title = self.text_of(link)
            if not href or not title or "javascript" in href:
                continue
            entries.append((title, self.absolute_url(href, url)))

        if not entries:
            logger.warning("Fanqie catalog without chapter links: %s", url)
            raise SourceFormatError(_CHAPTER_LINK_SEL, url, "No chapters found in catalog")

        # The "latest update" shortcut repeats a chapter link; later position wins
        return self.number_chapters(entries)

    def parse_chapter(self, html: str, ref: ChapterRef) -> ChapterContent:
        soup = BeautifulSoup(html, "html.parser")
        container = self.require(soup.select_one(_CONTENT_SEL), _CONTENT_SEL, ref.source_url)
        body = self.paragraphs_text(container)
        if not body:
            raise SourceFormatError(_CONTENT_SEL, ref.source_url, "Empty chapter content")
        return ChapterContent(ref=ref, body=body)

    def parse_rank_list(self, html: str, url: str, max_novels: int) -> list[RankEntry]:
        soup = BeautifulSoup(html, "html.parser")
        entries: dict[str, RankEntry] = {}
        for link in soup.select(_RANK_LINK_SEL):
            href = link.get("href", "")
            if "/page/" not in href:
                continue
            full_url = self.absolute_url(href, url)
            title = self.text_of(link)
            entry = entries.get(full_url)
            if entry is None:
                entries[full_url] = RankEntry(title=title, url=full_url)
            elif not entry.title:
                # Cover image link came first
                entry.title = title

        if not entries and max_novels > 0:
            raise SourceFormatError(_RANK_LINK_SEL, url, "No novels found in rank list")
        return list(entries.values())[:max_novels]
