"""
Utility helpers for reconciliation configuration checks.
"""

from __future__ import annotations

from flask import current_app

from config.base import MAX_BATCH_SIZE


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_reconcile_enabled(app=None) -> bool:
    """Return True when the reconciliation feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("RECONCILE_ENABLED", False))


def get_collection_name(app=None) -> str:
    """Return the single canonical collection the engine works on."""
    config = _get_config(app)
    return str(config.get("RECONCILE_COLLECTION") or "").strip()


def get_batch_size(app=None) -> int:
    config = _get_config(app)
    try:
        size = int(config.get("RECONCILE_BATCH_SIZE", MAX_BATCH_SIZE))
    except (TypeError, ValueError):
        return MAX_BATCH_SIZE
    return max(1, min(size, MAX_BATCH_SIZE))
