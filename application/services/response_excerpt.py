# application/services/response_excerpt.py
from __future__ import annotations

from typing import Dict, Optional

from bs4 import BeautifulSoup

EXCERPT_LIMIT = 500


def _content_type(headers: Optional[Dict[str, str]]) -> str:
    for k, v in (headers or {}).items():
        if k.lower() == "content-type":
            return v.lower()
    return ""


def _try_extract_title(html: str) -> Optional[str]:
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception:
        return None
    if soup.title is None:
        return None
    return soup.title.get_text(strip=True) or None


def build_excerpt(text: Optional[str], headers: Optional[Dict[str, str]] = None) -> str:
    """
    Short, display-friendly summary of a response body.
    HTML error pages (proxies, gateways) are reduced to their <title>.
    """
    if not text:
        return ""
    if "html" in _content_type(headers) or text.lstrip()[:15].lower().startswith(("<!doctype html", "<html")):
        title = _try_extract_title(text)
        if title:
            return title[:EXCERPT_LIMIT]
    return text[:EXCERPT_LIMIT]
