"""Recognition of anti-bot / verification pages."""

import re

# Status codes that WAFs answer with instead of the real page
CHALLENGE_STATUS_CODES = {403, 429, 503}

# Markers that indicate a verification page rather than content
CHALLENGE_SIGNATURES = [
    "just a moment",
    "security checking",
    "checking your browser",
    "are you human",
    "verify you are human",
    "cf-challenge",
    "安全验证",
    "请完成验证",
    "人机验证",
    "访问验证",
    "滑动验证",
]

# Only meaningful in the <title>; script bundles mention them on normal pages
TITLE_ONLY_SIGNATURES = ["captcha", "验证码"]

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)

# Only the head of the document is scanned; chapter text may quote these words
_SCAN_LIMIT = 4000


def page_title(html: str) -> str:
    match = _TITLE_RE.search(html)
    return match.group(1).strip() if match else ""


def is_challenge_page(html: str, extra_signatures: tuple[str, ...] = ()) -> bool:
    """Return True if the document looks like a verification page."""
    if not html or not html.strip():
        return True
    head = html[:_SCAN_LIMIT].lower()
    title = page_title(html).lower()
    for signature in (*CHALLENGE_SIGNATURES, *extra_signatures):
        sig = signature.lower()
        if sig in title or sig in head:
            return True
    return any(sig in title for sig in TITLE_ONLY_SIGNATURES)
