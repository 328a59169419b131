"""
Deduplication helpers for crawler outputs.
"""
from __future__ import annotations

from typing import Callable, Hashable, Iterable, List, TypeVar

from crawler.schemas.models import ScrapedPost

T = TypeVar("T")


def dedupe_by_key(items: Iterable[T], key_fn: Callable[[T], Hashable]) -> List[T]:
    """Keep the first item per key, preserving input order."""
    seen = set()
    result: List[T] = []
    for item in items:
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def dedupe_posts(posts: Iterable[ScrapedPost]) -> List[ScrapedPost]:
    # platform id when present, URL otherwise
    return dedupe_by_key(posts, key_fn=ScrapedPost.dedup_key)


def dedupe_by_url(items: Iterable[T]) -> List[T]:
    return dedupe_by_key(items, key_fn=lambda item: item.url)
