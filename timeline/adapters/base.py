"""
Adapter protocol + registry for pluggable social sources.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from crawler.schemas.models import ScrapedPost, normalize_platform

from timeline.models import SourceAccount


class SourceAdapter(Protocol):
    name: str
    platforms: Sequence[str]

    def accepts(self, account: SourceAccount) -> bool:
        ...

    def fetch(self, account: SourceAccount) -> List[ScrapedPost]:
        ...


class AdapterRegistry:
    """
    Platform key -> ordered adapters. The first adapter that accepts an account handles it;
    no taker means the account is misconfigured.
    """

    def __init__(self) -> None:
        self._adapters: Dict[str, Tuple[SourceAdapter, ...]] = {}

    def register(self, adapter: SourceAdapter, platforms: Optional[Iterable[str]] = None) -> None:
        for platform in platforms or adapter.platforms:
            key = normalize_platform(platform)
            current = self._adapters.get(key, ())
            if adapter in current:
                raise ValueError(f"Adapter '{adapter.name}' already registered for '{key}'")
            self._adapters[key] = current + (adapter,)

    def resolve(self, account: SourceAccount) -> Optional[SourceAdapter]:
        for adapter in self._adapters.get(normalize_platform(account.platform), ()):
            if adapter.accepts(account):
                return adapter
        return None

    def supports(self, platform: str) -> bool:
        return normalize_platform(platform) in self._adapters

    def keys(self) -> Iterable[str]:
        return self._adapters.keys()
