"""Chapter data models."""

from dataclasses import dataclass

CHAPTER_RULE = "=" * 50


@dataclass(frozen=True)
class ChapterRef:
    """A chapter as listed in a catalog (1-based ordinal in published order)."""
    index: int
    title: str
    source_url: str


@dataclass(frozen=True)
class ChapterContent:
    """A fetched chapter body."""
    ref: ChapterRef
    body: str

    def render(self) -> str:
        """Render the text stored in the chapter file."""
        return (
            f"标题: {self.ref.title}\n"
            f"链接: {self.ref.source_url}\n"
            f"{CHAPTER_RULE}\n\n"
            f"{self.body}"
        )


def strip_chapter_header(text: str) -> str:
    """Return the body of a rendered chapter file (the text itself if no header)."""
    marker = f"{CHAPTER_RULE}\n\n"
    head, sep, body = text.partition(marker)
    if sep and head.startswith("标题:"):
        return body
    return text
