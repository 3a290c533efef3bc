"""
Text and URL helpers shared by the normalizers and the ranker.
"""

import hashlib
import re
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from bs4 import BeautifulSoup

_HANGUL = re.compile(r"[가-힣ᄀ-ᇿ㄰-㆏]")
_KANA = re.compile(r"[぀-ゟ゠-ヿ]")

# Query parameters that never change which document a url points at
_TRACKING_PARAMS = ("utm_", "fbclid", "gclid", "ocid", "cmpid", "ref", "rss")


def detect_language(text: Optional[str]) -> str:
    """Return 'ko', 'ja' or 'en' from the script ranges present in the text."""
    if not text:
        return "en"
    if _HANGUL.search(text):
        return "ko"
    if _KANA.search(text):
        return "ja"
    return "en"


def source_domain(url: Optional[str]) -> str:
    if not url:
        return ""
    try:
        netloc = urlparse(url.strip()).netloc.lower()
    except ValueError:
        return ""
    netloc = netloc.split("@")[-1].split(":")[0]
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc


def canonical_url(url: str) -> str:
    """
    Canonical form of an article url for identity hashing.

    Scheme and host are lowercased, ``www.`` and the fragment are dropped,
    trailing slashes are removed and tracking parameters are filtered out.
    http and https map to the same value.
    """
    parsed = urlparse(url.strip())
    host = source_domain(url)
    path = parsed.path.rstrip("/")
    query = [
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if not any(k.lower().startswith(p) for p in _TRACKING_PARAMS)
    ]
    return urlunparse(("https", host, path, "", urlencode(sorted(query)), ""))


def normalize_title(title: Optional[str]) -> str:
    text = re.sub(r"[^\w\s]", "", (title or "").lower())
    return " ".join(text.split())


def make_article_id(source: str, url: Optional[str], title: Optional[str]) -> str:
    """
    Content-identity hash.

    With a url the hash covers the canonical url only, so one story carried
    by several providers collapses to a single id. Without a url it covers
    the source name plus the normalized title.
    """
    if url:
        basis = "url|" + canonical_url(url)
    else:
        basis = f"title|{(source or '').strip().lower()}|{normalize_title(title)}"
    return hashlib.sha1(basis.encode("utf-8")).hexdigest()


def strip_html(value: Optional[str]) -> str:
    if not value:
        return ""
    if "<" not in value and "&" not in value:
        return " ".join(value.split())
    text = BeautifulSoup(value, "html.parser").get_text(" ")
    return " ".join(text.split())


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"
