"""Qidian (qidian.com) source adapter.

Qidian sits behind an aggressive WAF and renders its catalog with JS, so
book pages, catalogs and chapters go through the browser when one is
available. Metadata falls back to the lighter mobile page over plain HTTP.
"""

import logging
import re

from bs4 import BeautifulSoup

from config.exceptions import ChallengeDetectedError, FetchError, SourceFormatError
from models.chapter import ChapterContent, ChapterRef
from models.enums import Platform
from models.novel import NovelMetadata, RankEntry, UNKNOWN_WORD_COUNT
from spiders.base import SourceAdapter
from spiders.challenge import page_title

logger = logging.getLogger(__name__)

DESKTOP_BASE = "https://www.qidian.com"
MOBILE_BASE = "https://m.qidian.com"

MOBILE_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1"
    ),
    "Referer": f"{MOBILE_BASE}/",
}

_BOOK_ID_RE = re.compile(r"book/([0-9]+)")

# WAF banners that can survive into a page title
_WAF_TITLES = ("Just a moment", "Security checking")

_TITLE_SEL = "h1, #bookName"
_DESC_SEL = "#book-intro-detail"
_DESC_FALLBACK_SEL = ".book-intro, .intro"
_ATTR_TAG_SEL = ".book-attribute a"
_EXTRA_TAG_SEL = ".intro-honor-label .all-label a, .all-label a"
_WORD_COUNT_SEL = ".count em"
_MOBILE_TITLE_SEL = "h1, .book-title, .detail h2"
_CATALOG_LINK_SEL = ".y-list__item a, a[class*='chapterItem']"
_CHAPTER_TITLE_SEL = ".j_chapterName, .text-head h3, h1, .chapter-name"
_CONTENT_SEL = "main.content, .read-content, .main-text-wrap, .j_readContent, #reader-content"
_RANK_LINK_SEL = "#rank-view-list .book-mid-info h2 a, .book-img-text .book-mid-info h2 a, .rank-list a.book-layout"

_BOOK_READY = (".book-intro", "#book-intro-detail", ".book-info")
_CATALOG_READY = (".y-list__item", ".chapter-li-a")
_CHAPTER_READY = (".j_chapterName", "main.content", ".read-content")
_RANK_READY = ("#rank-view-list", ".book-img-text", ".rank-list")


def extract_book_id(url: str) -> str:
    match = _BOOK_ID_RE.search(url)
    if not match:
        raise SourceFormatError("book/<id>", url, "无法从 URL 提取 bookId")
    return match.group(1)


class QidianAdapter(SourceAdapter):
    """Browser-first adapter with a mobile HTTP fallback for metadata."""

    platform = Platform.QIDIAN
    base_url = DESKTOP_BASE
    challenge_signatures = _WAF_TITLES

    @property
    def _prefer_browser(self) -> bool:
        return self.evasion is not None

    # ---- Fetch ----

    async def fetch_catalog_metadata(self, url: str) -> NovelMetadata:
        try:
            html = await self.get_html(url, _BOOK_READY, use_browser=self._prefer_browser)
            return self.parse_catalog(html, url)
        except FetchError as e:
            logger.warning("Qidian metadata fetch failed (%s), trying mobile page", e)
            return await self._fetch_mobile_metadata(url)

    async def _fetch_mobile_metadata(self, url: str) -> NovelMetadata:
        mobile_url = f"{MOBILE_BASE}/book/{extract_book_id(url)}"
        html = await self.get_html(mobile_url, headers=MOBILE_HEADERS)
        return self.parse_mobile_catalog(html, mobile_url)

    async def fetch_chapter_list(self, url: str) -> list[ChapterRef]:
        catalog_url = f"{MOBILE_BASE}/book/{extract_book_id(url)}/catalog"
        logger.info("Fetching Qidian catalog from %s", catalog_url)
        html = await self.get_html(catalog_url, _CATALOG_READY, use_browser=self._prefer_browser)
        return self.parse_chapter_list(html, catalog_url)

    async def fetch_chapter_body(self, ref: ChapterRef) -> ChapterContent:
        # Desktop reader markup is the one the selectors target
        target_url = ref.source_url.replace("m.qidian.com", "www.qidian.com")
        html = await self.get_html(target_url, _CHAPTER_READY, use_browser=self._prefer_browser)
        return self.parse_chapter(html, ref)

    async def fetch_rank_list(self, url: str, max_novels: int) -> list[RankEntry]:
        html = await self.get_html(url, _RANK_READY, use_browser=self._prefer_browser)
        return self.parse_rank_list(html, url, max_novels)

    # ---- Parse ----

    def parse_catalog(self, html: str, url: str) -> NovelMetadata:
        soup = BeautifulSoup(html, "html.parser")

        title = self.text_of(soup.select_one(_TITLE_SEL))
        if not title:
            # <title> usually reads "Novel Name_Author_..."
            title = page_title(html).split("_")[0].strip()
        if any(banner in title for banner in _WAF_TITLES):
            raise ChallengeDetectedError("Page still caught by WAF", url)
        if not title:
            raise SourceFormatError(_TITLE_SEL, url, "Novel title not found")

        description = self.text_of(soup.select_one(_DESC_SEL)) or self.text_of(soup.select_one(_DESC_FALLBACK_SEL))
        if not description:
            meta = soup.select_one("meta[name='description']")
            description = meta.get("content", "").strip() if meta is not None else ""

        # Attribute tags (连载, 签约, 都市, ...) then honor labels (月票榜, 系统流, ...)
        raw_tags = [a.get_text(strip=True) for a in soup.select(_ATTR_TAG_SEL)]
        raw_tags += [a.get_text(strip=True) for a in soup.select(_EXTRA_TAG_SEL)]

        word_count = self.text_of(soup.select_one(_WORD_COUNT_SEL)) or UNKNOWN_WORD_COUNT

        return NovelMetadata(
            title=title,
            url=url,
            tags=self.unique_tags(raw_tags),
            word_count=word_count,
            description=description,
        )

    def parse_mobile_catalog(self, html: str, mobile_url: str) -> NovelMetadata:
        soup = BeautifulSoup(html, "html.parser")
        title = self.text_of(soup.select_one(_MOBILE_TITLE_SEL))
        if not title or any(banner in title for banner in _WAF_TITLES):
            raise SourceFormatError(_MOBILE_TITLE_SEL, mobile_url, "Mobile page has no novel title")

        description = self.text_of(soup.select_one(_DESC_FALLBACK_SEL))
        if not description:
            meta = soup.select_one("meta[name='description']")
            description = meta.get("content", "").strip() if meta is not None else ""

        return NovelMetadata(title=title, url=mobile_url, description=description)

    def parse_chapter_list(self, html: str, catalog_url: str) -> list[ChapterRef]:
        soup = BeautifulSoup(html, "html.parser")
        entries = []
        for link in soup.select(_CATALOG_LINK_SEL):
            title = self.text_of(link)
            href = link.get("href", "")
            if not title or not href or "javascript" in href:
                continue
            full_url = self.absolute_url(href, MOBILE_BASE)
            if "/chapter/" in full_url or "/read/" in full_url:
                entries.append((title, full_url))

        if not entries:
            logger.warning("Qidian catalog without chapters: %s (snippet: %s)", catalog_url, html[:300])
            raise SourceFormatError(_CATALOG_LINK_SEL, catalog_url, "No chapters found in catalog")
        return self.number_chapters(entries)

    def parse_chapter(self, html: str, ref: ChapterRef) -> ChapterContent:
        soup = BeautifulSoup(html, "html.parser")
        container = soup.select_one(_CONTENT_SEL)
        if container is None:
            logger.warning("No content container for %s (snippet: %s)", ref.source_url, html[:300])
            raise SourceFormatError(_CONTENT_SEL, ref.source_url, "Failed to find content (WAF or selector mismatch)")

        page_chapter_title = self.text_of(soup.select_one(_CHAPTER_TITLE_SEL))
        if page_chapter_title and page_chapter_title != ref.title:
            logger.debug("Chapter title differs from catalog: %r vs %r", page_chapter_title, ref.title)

        body = self.paragraphs_text(container)
        if not body:
            raise SourceFormatError(_CONTENT_SEL, ref.source_url, "Empty chapter content")
        return ChapterContent(ref=ref, body=body)

    def parse_rank_list(self, html: str, url: str, max_novels: int) -> list[RankEntry]:
        soup = BeautifulSoup(html, "html.parser")
        base = MOBILE_BASE if "m.qidian.com" in url else DESKTOP_BASE
        entries = []
        seen = set()
        # Document order is the rank order; never sort
        for link in soup.select(_RANK_LINK_SEL):
            href = link.get("href", "")
            if not href:
                continue
            full_url = self.absolute_url(href, base)
            if "/book/" not in full_url or full_url in seen:
                continue
            seen.add(full_url)
            entries.append(RankEntry(title=self.text_of(link), url=full_url))

        logger.info("Found %d novels in Qidian rank list", len(entries))
        if not entries and max_novels > 0:
            raise SourceFormatError(_RANK_LINK_SEL, url, "No novels found in rank list")
        return entries[:max_novels]
