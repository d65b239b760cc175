"""Text utilities: filename sanitizing, whitespace cleanup, character counting."""

import re

MAX_DIRNAME_LENGTH = 80

# Anything that is neither a word character nor a few harmless title marks
_UNSAFE_NAME_RE = re.compile(r"[^\w\-·（）()《》]+")
_BLANK_RUN_RE = re.compile(r"[ \t\u3000\xa0]+")


def sanitize_filename(title: str, max_length: int = MAX_DIRNAME_LENGTH) -> str:
    """Turn a novel title into a filesystem-safe directory name.

    Separators and punctuation collapse into a single underscore, the result
    is capped at ``max_length`` characters. ``\\w`` is unicode-aware, so CJK
    titles survive untouched.
    """
    name = _UNSAFE_NAME_RE.sub("_", title.strip())
    name = name.strip("_.")[:max_length].rstrip("_.")
    return name or "untitled"


def clean_text(text: str) -> str:
    """Collapse inline whitespace runs and trim the string."""
    return _BLANK_RUN_RE.sub(" ", text).strip()


def join_paragraphs(paragraphs: list[str]) -> str:
    """Join non-empty paragraphs with a blank line between them."""
    cleaned = [clean_text(p) for p in paragraphs]
    return "\n\n".join(p for p in cleaned if p)


def count_chinese_chars(text: str) -> int:
    """Count Chinese characters (CJK Unified Ideographs) in text.

    Only counts actual Chinese characters, excluding punctuation, spaces, and Latin characters.
    """
    return len(re.findall(r"[\u4e00-\u9fff\u3400-\u4dbf]", text))
