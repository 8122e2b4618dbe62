from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from wall_app.reconcile.models import LiveRecord, SourceRecord
from wall_app.reconcile.store import InMemoryStore, StoreWriteError

COLLECTION = "wall_items"
PARENT_ID = "wall-test"
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def live_factory():
    def _factory(
        record_id: str,
        *,
        images=(),
        created_offset_days: int | None = 0,
        parent_id: str | None = PARENT_ID,
        object_type: str | None = "veteran",
        **fields,
    ) -> LiveRecord:
        created = None if created_offset_days is None else BASE_TIME + timedelta(days=created_offset_days)
        return LiveRecord(
            id=record_id,
            parent_id=parent_id,
            fields=fields,
            images=tuple(images),
            created_at=created,
            updated_at=created,
            object_type=object_type,
        )

    return _factory


@pytest.fixture
def source_factory():
    def _factory(row_number: int | None = None, **fields) -> SourceRecord:
        return SourceRecord(fields=fields, row_number=row_number)

    return _factory


@pytest.fixture
def memory_store():
    return InMemoryStore()


class FlakyStore(InMemoryStore):
    """Rejects the batch with the given 1-based number; every other batch commits."""

    def __init__(self, fail_on_batch: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_on_batch = fail_on_batch
        self.attempts = 0

    def batch_write(self, collection, ops):
        self.attempts += 1
        if self.attempts == self.fail_on_batch:
            raise StoreWriteError(collection, "deadline exceeded")
        return super().batch_write(collection, ops)


@pytest.fixture
def flaky_store_factory():
    def _factory(fail_on_batch: int) -> FlakyStore:
        return FlakyStore(fail_on_batch)

    return _factory
