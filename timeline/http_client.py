"""
JSON HTTP helper with retries (tweet syndication, Niconico APIs).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from urllib3.util.retry import Retry

from crawler.infra.http import DEFAULT_USER_AGENT
from utils.security import redact_secrets

logger = logging.getLogger(__name__)


class HttpClient:
    """Returns decoded JSON, or None for any non-200 answer, transport error or bad body."""

    def __init__(self, timeout: int = 20, max_retries: int = 2, user_agent: str | None = None):
        self.timeout = timeout
        self.session = requests.Session()
        retry = Retry(
            total=max_retries,
            backoff_factor=0.6,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = requests.adapters.HTTPAdapter(max_retries=retry)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update(
            {
                "User-Agent": user_agent or DEFAULT_USER_AGENT,
                "Accept": "application/json, text/plain, */*",
                "Accept-Language": "ja,en;q=0.8",
            }
        )

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Any]:
        try:
            resp = self.session.get(url, params=params, headers=headers or {}, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("GET %s raised %s", redact_secrets(url), redact_secrets(str(exc)))
            return None
        if resp.status_code != 200:
            logger.warning(
                "GET %s -> HTTP %s %s",
                redact_secrets(url),
                resp.status_code,
                redact_secrets(resp.text[:200]),
            )
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning("GET %s returned a non-JSON body", redact_secrets(url))
            return None
