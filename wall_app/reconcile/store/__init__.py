"""
Document store registry.

Stores register metadata here so configuration validation can happen without
importing the Firebase client libraries.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .base import (
    MAX_BATCH_OPS,
    BatchResult,
    DocumentStore,
    RecordFilter,
    StoreError,
    StoreWriteError,
)
from .memory import InMemoryStore


@dataclass(frozen=True)
class StoreDescriptor:
    """Metadata describing a document store backend."""

    name: str
    title: str
    optional_dependencies: Tuple[str, ...] = ()
    summary: str | None = None


def get_store_registry() -> Mapping[str, StoreDescriptor]:
    return OrderedDict(
        (
            (
                "firestore",
                StoreDescriptor(
                    name="firestore",
                    title="Cloud Firestore",
                    optional_dependencies=("firebase-admin",),
                    summary="Read and write wall items through the Firebase Admin SDK.",
                ),
            ),
            (
                "memory",
                StoreDescriptor(
                    name="memory",
                    title="In-memory",
                    summary="Process-local store for tests and dry runs.",
                ),
            ),
        )
    )


def build_store(config: Mapping[str, Any]) -> DocumentStore:
    """Instantiate the store named by ``RECONCILE_STORE``."""

    name = str(config.get("RECONCILE_STORE") or "firestore").strip().lower()
    if name not in get_store_registry():
        raise ValueError(
            f"Unknown document store configured: {name}. Expected one of: " + ", ".join(get_store_registry())
        )
    if name == "memory":
        return InMemoryStore()

    from .firestore import FirestoreStore

    return FirestoreStore.from_config(config)


__all__ = [
    "BatchResult",
    "DocumentStore",
    "InMemoryStore",
    "MAX_BATCH_OPS",
    "RecordFilter",
    "StoreDescriptor",
    "StoreError",
    "StoreWriteError",
    "build_store",
    "get_store_registry",
]
