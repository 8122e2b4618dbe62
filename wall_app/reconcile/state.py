"""
Access to the reconciliation state stored on the Flask application.

The document store is created lazily from configuration the first time a
command needs it; tests replace it by assigning ``state["store"]``.
"""

from __future__ import annotations

from typing import Any

from flask import Flask

from config.normalization import NormalizationProfile, load_profile

from .store import DocumentStore, RecordFilter, build_store

RECONCILE_EXTENSION_KEY = "reconcile"


def ensure_extension_state(app: Flask) -> dict[str, Any]:
    return app.extensions.setdefault(
        RECONCILE_EXTENSION_KEY,
        {
            "enabled": False,
            "store": None,
            "profile": None,
        },
    )


def get_store(app: Flask) -> DocumentStore:
    state = ensure_extension_state(app)
    if state.get("store") is None:
        state["store"] = build_store(app.config)
        app.logger.info(
            "Initialized %s document store",
            app.config.get("RECONCILE_STORE"),
            extra={"reconcile_collection": app.config.get("RECONCILE_COLLECTION")},
        )
    return state["store"]


def set_store(app: Flask, store: DocumentStore | None) -> None:
    ensure_extension_state(app)["store"] = store


def get_profile(app: Flask) -> NormalizationProfile:
    state = ensure_extension_state(app)
    if state.get("profile") is None:
        state["profile"] = load_profile(app.config)
    return state["profile"]


def get_record_filter(app: Flask) -> RecordFilter:
    return RecordFilter(
        parent_id=app.config.get("RECONCILE_PARENT_ID"),
        object_type=app.config.get("RECONCILE_OBJECT_TYPE"),
    )
