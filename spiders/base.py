"""Source adapter base class: the interface every platform implements.

Each adapter fetches four kinds of pages (catalog metadata, chapter list,
chapter body, rank list) and parses its own markup into the shared models.
Page procurement lives here: a plain httpx GET first, and the browser
evasion layer when the response is a challenge page or when the visible
browser is requested for manual solving.
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Optional
from urllib.parse import urljoin

import httpx
from bs4 import Tag

from config.exceptions import ChallengeDetectedError, FetchError, SourceFormatError
from config.settings import Settings
from models.chapter import ChapterContent, ChapterRef
from models.enums import Platform
from models.novel import NovelMetadata, RankEntry
from spiders.browser import EvasionLayer
from spiders.challenge import CHALLENGE_STATUS_CODES, is_challenge_page
from tools.text_utils import clean_text, join_paragraphs

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "zh-CN,zh;q=0.9",
}


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for plain page fetches."""
    return httpx.AsyncClient(
        headers=DEFAULT_HEADERS,
        timeout=settings.request_timeout,
        follow_redirects=True,
    )


class SourceAdapter(ABC):
    """Abstract base class of a platform adapter.

    Subclasses must set ``platform`` / ``base_url`` and implement the four
    fetch operations. Parsing failures surface as ``SourceFormatError``;
    transport failures as ``FetchError``.
    """

    platform: ClassVar[Platform]
    base_url: ClassVar[str] = ""
    # Extra verification-page markers for this platform
    challenge_signatures: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        client: httpx.AsyncClient,
        evasion: Optional[EvasionLayer] = None,
        evasion_visible: bool = False,
    ):
        self.client = client
        self.evasion = evasion
        self.evasion_visible = evasion_visible

    @property
    def name(self) -> str:
        return self.platform.value

    # ---- Operations (subclasses must implement) ----

    @abstractmethod
    async def fetch_catalog_metadata(self, url: str) -> NovelMetadata:
        """Fetch the novel's landing page and return its metadata (no aiAnalysis)."""
        ...

    @abstractmethod
    async def fetch_chapter_list(self, url: str) -> list[ChapterRef]:
        """Return chapters in published order, ordinals starting at 1."""
        ...

    @abstractmethod
    async def fetch_chapter_body(self, ref: ChapterRef) -> ChapterContent:
        ...

    @abstractmethod
    async def fetch_rank_list(self, url: str, max_novels: int) -> list[RankEntry]:
        """Return at most ``max_novels`` novels in rank order."""
        ...

    # ---- Page procurement ----

    async def get_html(
        self,
        url: str,
        ready_selectors: tuple[str, ...] = (),
        headers: Optional[dict] = None,
        use_browser: bool = False,
    ) -> str:
        """Fetch a page, falling back to the browser on challenge pages.

        Args:
            url: Page URL.
            ready_selectors: Selectors the browser waits for.
            headers: Extra request headers for the plain HTTP path.
            use_browser: Skip the plain HTTP attempt (JS-rendered pages).
        """
        if self.evasion_visible or use_browser:
            return await self._browser_html(url, ready_selectors, reason="browser requested")

        try:
            response = await self.client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed: {e}", url) from e

        html = response.text
        if response.status_code in CHALLENGE_STATUS_CODES or is_challenge_page(html, self.challenge_signatures):
            logger.info("Challenge detected for %s (HTTP %d)", url, response.status_code)
            return await self._browser_html(url, ready_selectors, reason="challenge")

        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code}", url, {"status": response.status_code})
        return html

    async def _browser_html(self, url: str, ready_selectors: tuple[str, ...], reason: str) -> str:
        if self.evasion is None:
            raise ChallengeDetectedError("Verification page and no browser available", url)
        logger.debug("Using evasion layer for %s (%s)", url, reason)
        return await self.evasion.fetch_document(
            url,
            ready_selectors=ready_selectors,
            visible=self.evasion_visible,
            extra_signatures=self.challenge_signatures,
        )

    # ---- Parsing helpers ----

    def absolute_url(self, href: str, page_url: str = "") -> str:
        """Resolve protocol-relative and path-relative links."""
        href = href.strip()
        if href.startswith("//"):
            return "https:" + href
        return urljoin(page_url or self.base_url, href)

    @staticmethod
    def text_of(tag: Optional[Tag]) -> str:
        return clean_text(tag.get_text(" ", strip=True)) if tag is not None else ""

    @staticmethod
    def require(tag: Optional[Tag], selectors: str, url: str) -> Tag:
        """Return ``tag`` or raise SourceFormatError naming the selectors tried."""
        if tag is None:
            raise SourceFormatError(selectors, url)
        return tag

    @staticmethod
    def unique_tags(values: list[str]) -> list[str]:
        """Trim, drop empties and duplicates, keep first-seen order."""
        seen = set()
        tags = []
        for value in values:
            value = clean_text(value)
            if value and value not in seen:
                seen.add(value)
                tags.append(value)
        return tags

    @staticmethod
    def number_chapters(entries: list[tuple[str, str]]) -> list[ChapterRef]:
        """Assign 1-based ordinals to (title, url) pairs.

        A URL listed twice keeps only its later position.
        """
        last_position = {url: i for i, (_, url) in enumerate(entries)}
        refs = []
        for i, (title, url) in enumerate(entries):
            if last_position[url] != i:
                continue
            refs.append(ChapterRef(index=len(refs) + 1, title=title, source_url=url))
        return refs

    @staticmethod
    def paragraphs_text(container: Tag) -> str:
        """Body text of a content container, paragraphs separated by blank lines."""
        paragraphs = [p.get_text(" ", strip=True) for p in container.find_all("p")]
        if any(p.strip() for p in paragraphs):
            return join_paragraphs(paragraphs)
        return join_paragraphs(container.get_text("\n").splitlines())
