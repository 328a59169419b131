"""
Load the account list (`config/accounts.yaml`) with `${ENV}` expansion.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from timeline.models import AccountGroup, SourceAccount

logger = logging.getLogger(__name__)


def load_accounts_config(path: Path | str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        logger.warning("accounts config not found at %s", config_path)
        return {}
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        logger.error("accounts config at %s must be a mapping", config_path)
        return {}
    return _expand_env(data)


def load_accounts(path: Path | str) -> List[SourceAccount]:
    """
    Accounts are grouped by section (`official`, `prefectural`, `politician`); a section
    entry may omit `group`. Malformed entries are logged and skipped.
    """
    config = load_accounts_config(path)
    accounts: List[SourceAccount] = []
    for group in AccountGroup:
        for entry in config.get(group.value) or []:
            if not isinstance(entry, dict) or not entry.get("id") or not entry.get("platform"):
                logger.warning("Skipping malformed %s account entry: %r", group.value, entry)
                continue
            row = dict(entry)
            row.setdefault("group", group.value)
            accounts.append(SourceAccount.from_mapping(row))
    return accounts


def _expand_env(data: Dict[str, Any]) -> Dict[str, Any]:
    def replace(value: Any) -> Any:
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_key = value[2:-1]
            return os.getenv(env_key, "")
        if isinstance(value, dict):
            return {k: replace(v) for k, v in value.items()}
        if isinstance(value, list):
            return [replace(item) for item in value]
        return value

    return replace(data)  # type: ignore[return-value]
