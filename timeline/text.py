"""
Text clean-up for post bodies and feed titles, plus the tweet syndication lookup.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup

from timeline.http_client import HttpClient
from utils.security import redact_secrets

logger = logging.getLogger(__name__)

SYNDICATION_URL = "https://cdn.syndication.twimg.com/tweet"

_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)

_TRAILING_PIC = re.compile(r"https?://pic\.twitter\.com/\S+$", re.MULTILINE)
_TRAILING_TCO = re.compile(r"\s*https?://t\.co/\S+$", re.MULTILINE)
_TRAILING_SPACE = re.compile(r"[\t ]+$", re.MULTILINE)
_INNER_SPACE = re.compile(r"[\t ]{2,}")
_BLANK_LINES = re.compile(r"\n{3,}")


def _normalize_once(text: str) -> str:
    out = text
    for entity, char in _ENTITIES:
        out = out.replace(entity, char)
    out = _TRAILING_PIC.sub("", out)
    out = _TRAILING_TCO.sub("", out)
    out = _TRAILING_SPACE.sub("", out)
    out = _INNER_SPACE.sub(" ", out)
    out = _BLANK_LINES.sub("\n\n", out)
    return out.strip()


def normalize(raw: Optional[str]) -> str:
    """
    Decode the common HTML entities, drop trailing media/short links per line
    and tidy whitespace. Repeated until stable so that normalize(normalize(s)) == normalize(s).
    """
    if not raw:
        return ""
    current = str(raw)
    while True:
        cleaned = _normalize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def strip_tags(raw: Optional[str]) -> str:
    if not raw:
        return ""
    if "<" not in raw and "&" not in raw:
        return raw.strip()
    return BeautifulSoup(raw, "lxml").get_text().strip()


def fetch_canonical_text(external_id: str, client: Optional[HttpClient] = None) -> Optional[str]:
    """Full tweet text from the public syndication endpoint, or None on any failure."""
    if not external_id:
        return None
    client = client or HttpClient(timeout=10, max_retries=1)
    try:
        data = client.get(SYNDICATION_URL, params={"id": external_id, "lang": "ja"})
    except Exception as exc:
        logger.debug("Syndication lookup failed for %s: %s", external_id, redact_secrets(str(exc)))
        return None
    if not isinstance(data, dict):
        return None
    raw = data.get("full_text") or data.get("text") or ""
    if not raw:
        return None
    return normalize(str(raw)) or None
