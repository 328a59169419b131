"""
Public API for the timeline pipeline.
"""
from __future__ import annotations

import threading
from typing import Any, Dict

from timeline.models import Summary

_pipeline = None
_lock = threading.Lock()


def get_pipeline():
    """Build the shared pipeline on first use so importing the package stays side-effect free."""
    global _pipeline
    with _lock:
        if _pipeline is None:
            from timeline.pipeline import TimelinePipeline

            _pipeline = TimelinePipeline()
        return _pipeline


def run_all() -> Summary:
    return get_pipeline().run_all()


def run_one(account_id: str) -> Summary:
    return get_pipeline().run_one(account_id)


def run_for_entity(entity_id: str) -> Summary:
    return get_pipeline().run_for_entity(entity_id)


def run_official(kind: str) -> Summary:
    return get_pipeline().run_official(kind)


def get_pipeline_status() -> Dict[str, Any]:
    from timeline.status import build_status

    return build_status(get_pipeline())
