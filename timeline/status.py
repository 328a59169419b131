"""
Status/health helpers for the timeline pipeline.

The payload is JSON-friendly and carries no secrets, only paths and counts.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from timeline.models import HealthStatus
from timeline.pipeline import TimelinePipeline


def _health_to_dict(status: HealthStatus) -> Dict[str, Any]:
    return {
        "name": status.name,
        "healthy": status.healthy,
        "last_error": status.last_error,
        "last_success": status.last_success.isoformat() if status.last_success else None,
        "items_last_fetch": status.items_last_fetch,
        "latency_ms": status.latency_ms,
        "extra": status.extra,
    }


def build_status(pipeline: TimelinePipeline) -> Dict[str, Any]:
    settings = pipeline.settings
    accounts = pipeline.store.list_accounts()
    health = [_health_to_dict(entry) for entry in pipeline.get_health()]
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "pipeline": {
            "health": health,
            "unhealthy": sum(1 for entry in health if not entry["healthy"]),
            "platforms": sorted(pipeline.registry.keys()),
        },
        "store": {
            "accounts": len(accounts),
            "active_accounts": sum(1 for row in accounts if row.get("is_active")),
            "posts": pipeline.store.count_posts(),
        },
        "config": {
            "db_path": str(settings.db_path),
            "accounts_path": str(settings.accounts_path),
            "account_delay": settings.account_delay,
            "feed_entry_limit": settings.feed_entry_limit,
            "max_workers": settings.max_workers,
        },
    }
