"""HTML-to-text helpers built on BeautifulSoup."""

from typing import Optional, Sequence

from bs4 import BeautifulSoup

PAGE_NOT_FOUND_PLACEHOLDER = "[Page content not found]"

# Moodle themes wrap the primary content in different containers; the first
# selector that yields text wins.
MAIN_CONTENT_SELECTORS = (
    'div[role="main"]',
    "#region-main",
    ".course-content",
    "div.page-content",
    "article",
    "main",
)


def strip_html(html: Optional[str]) -> str:
    """Return the visible text of an HTML fragment, whitespace-collapsed."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    return _element_text(soup)


def extract_main_text(
    html: str, selectors: Sequence[str] = MAIN_CONTENT_SELECTORS
) -> str:
    """
    Extract readable text from a full HTML page.

    Tries each selector in order and returns the text of the first one that
    matches non-empty content, then the whole body, then a placeholder.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    for selector in selectors:
        text = " ".join(
            filter(None, (_element_text(el) for el in soup.select(selector)))
        )
        if text:
            return text

    body_text = _element_text(soup.body if soup.body is not None else soup)
    return body_text or PAGE_NOT_FOUND_PLACEHOLDER


def _element_text(element) -> str:
    return " ".join(element.get_text(" ", strip=True).split())
