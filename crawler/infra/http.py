"""
Reusable HTTP fetching utilities with polite defaults (per-domain pacing, retries).
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Dict, Optional

import requests

from utils.security import redact_secrets

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class HttpFetcher:
    """
    Thin wrapper over requests.Session supporting per-domain pacing and bounded retries.
    Every call carries an explicit timeout; failures come back as None, never as exceptions.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        min_delay: float = 0.0,
        max_retries: int = 2,
        timeout: float = 15,
        accept_language: str = "ja,en-US;q=0.9,en;q=0.8",
    ) -> None:
        self.session = requests.Session()
        self.session.headers.update(
            {
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": accept_language,
            }
        )
        self.min_delay = min_delay
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self._last_hit: Dict[str, float] = {}
        self._lock = threading.RLock()

    def fetch(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Optional[requests.Response]:
        """
        Fetch a URL politely. Returns None if the request ultimately fails.

        Client errors other than 429 are not retried; they will not get better.
        """
        for attempt in range(self.max_retries):
            self._respect_delay(url)
            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers=headers or {},
                    timeout=timeout or self.timeout,
                )
                if response.status_code < 400:
                    return response
                if response.status_code not in RETRYABLE_STATUS:
                    logger.info("GET %s -> HTTP %s", redact_secrets(url), response.status_code)
                    return None
                raise requests.HTTPError(f"HTTP {response.status_code}")
            except Exception as exc:
                if attempt + 1 >= self.max_retries:
                    logger.warning("GET %s failed: %s", redact_secrets(url), redact_secrets(str(exc)))
                    break
                sleep_for = min(60, max(self.min_delay, 0.5) * (2 ** attempt))
                time.sleep(sleep_for + random.random())
        return None

    def get_text(self, url: str, **kwargs: Any) -> Optional[str]:
        response = self.fetch(url, **kwargs)
        if response is None:
            return None
        return response.text

    def get_json(self, url: str, **kwargs: Any) -> Optional[Any]:
        headers = {"Accept": "application/json"}
        headers.update(kwargs.pop("headers", None) or {})
        response = self.fetch(url, headers=headers, **kwargs)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Invalid JSON from %s: %s", redact_secrets(url), exc)
            return None

    def _respect_delay(self, url: str) -> None:
        if self.min_delay <= 0:
            return
        domain = self._extract_domain(url)
        with self._lock:
            last = self._last_hit.get(domain)
            now = time.time()
            if last and now - last < self.min_delay:
                wait = self.min_delay - (now - last) + random.random()
                time.sleep(wait)
            self._last_hit[domain] = time.time()

    @staticmethod
    def _extract_domain(url: str) -> str:
        return url.split("/")[2] if "://" in url else url
