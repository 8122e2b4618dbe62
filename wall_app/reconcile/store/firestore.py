"""
Firestore-backed document store.

Wall items live in a single collection; each document carries the owning wall
id, the object type, a ``fieldData`` map, an ``images`` array and created/updated
timestamps. The attribute names are configurable because older walls were
written with different layouts.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Mapping, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from ..models import LiveRecord, WriteOp
from .base import BatchResult, RecordFilter, StoreError, StoreWriteError, check_batch_size, count_actions

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "wall-reconcile"


def init_firebase_once(credentials_path: str | None, project_id: str | None = None) -> firebase_admin.App:
    """Initialize the Firebase Admin app once per process and return it."""

    try:
        return firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        pass

    options = {"projectId": project_id} if project_id else None
    if credentials_path:
        if not os.path.exists(credentials_path):
            raise StoreError(f"Firebase service account not found: {credentials_path}")
        logger.info("Initializing Firebase app with %s", credentials_path)
        cred = credentials.Certificate(credentials_path)
    else:
        logger.info("Initializing Firebase app with application default credentials")
        cred = credentials.ApplicationDefault()
    return firebase_admin.initialize_app(cred, options, name=FIREBASE_APP_NAME)


def _coerce_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


class FirestoreStore:
    """Document store contract implemented on top of ``firebase_admin.firestore``."""

    def __init__(
        self,
        client=None,
        *,
        credentials_path: str | None = None,
        project_id: str | None = None,
        parent_field: str = "wallId",
        fields_field: str = "fieldData",
        images_field: str = "images",
        created_field: str = "created",
        updated_field: str = "updated",
        object_type_field: str = "objectTypeId",
    ) -> None:
        self._client = client
        self._credentials_path = credentials_path
        self._project_id = project_id
        self.parent_field = parent_field
        self.fields_field = fields_field
        self.images_field = images_field
        self.created_field = created_field
        self.updated_field = updated_field
        self.object_type_field = object_type_field

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "FirestoreStore":
        return cls(
            credentials_path=config.get("FIREBASE_CREDENTIALS_PATH"),
            project_id=config.get("FIREBASE_PROJECT_ID"),
            parent_field=config.get("RECONCILE_PARENT_FIELD", "wallId"),
            fields_field=config.get("RECONCILE_FIELDS_FIELD", "fieldData"),
            images_field=config.get("RECONCILE_IMAGES_FIELD", "images"),
            created_field=config.get("RECONCILE_CREATED_FIELD", "created"),
            updated_field=config.get("RECONCILE_UPDATED_FIELD", "updated"),
            object_type_field=config.get("RECONCILE_OBJECT_TYPE_FIELD", "objectTypeId"),
        )

    @property
    def client(self):
        if self._client is None:
            app = init_firebase_once(self._credentials_path, self._project_id)
            self._client = firestore.client(app)
        return self._client

    # -- mapping ----------------------------------------------------------

    @property
    def modelled_keys(self) -> frozenset[str]:
        return frozenset(
            (
                self.parent_field,
                self.fields_field,
                self.images_field,
                self.created_field,
                self.updated_field,
                self.object_type_field,
            )
        )

    def to_record(self, doc_id: str, data: Mapping[str, Any] | None) -> LiveRecord:
        data = data or {}
        modelled = self.modelled_keys
        return LiveRecord(
            id=doc_id,
            parent_id=data.get(self.parent_field),
            fields=dict(data.get(self.fields_field) or {}),
            images=tuple(data.get(self.images_field) or ()),
            created_at=_coerce_timestamp(data.get(self.created_field)),
            updated_at=_coerce_timestamp(data.get(self.updated_field)),
            object_type=data.get(self.object_type_field),
            attributes={key: value for key, value in data.items() if key not in modelled},
        )

    def to_document(self, record: LiveRecord, *, merge: bool = False) -> dict[str, Any]:
        """
        Firestore document for ``record``.

        With ``merge`` the payload is meant for ``set(..., merge=True)``: an empty
        image list is left out so images already on the document survive.
        """

        document: dict[str, Any] = dict(record.attributes)
        document[self.parent_field] = record.parent_id
        document[self.fields_field] = dict(record.fields)
        if record.images or not merge:
            document[self.images_field] = list(record.images)
        document[self.created_field] = record.created_at or firestore.SERVER_TIMESTAMP
        document[self.updated_field] = record.updated_at or firestore.SERVER_TIMESTAMP
        if record.object_type is not None:
            document[self.object_type_field] = record.object_type
        return document

    def _update_payload(self, op: WriteOp) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, value in (op.fields or {}).items():
            payload[FieldPath(self.fields_field, name).to_api_repr()] = value
        if op.images is not None:
            payload[self.images_field] = list(op.images)
        payload[self.updated_field] = firestore.SERVER_TIMESTAMP
        return payload

    # -- contract ---------------------------------------------------------

    def query(self, collection: str, record_filter: RecordFilter | None = None) -> list[LiveRecord]:
        query = self.client.collection(collection)
        if record_filter is not None and record_filter.parent_id is not None:
            query = query.where(filter=FieldFilter(self.parent_field, "==", record_filter.parent_id))
        if record_filter is not None and record_filter.object_type is not None:
            query = query.where(filter=FieldFilter(self.object_type_field, "==", record_filter.object_type))
        try:
            records = [self.to_record(doc.id, doc.to_dict()) for doc in query.stream()]
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreError(f"Query on '{collection}' failed: {exc}") from exc
        logger.debug("Fetched %s documents from %s", len(records), collection)
        return sorted(records, key=lambda record: record.id)

    def get(self, collection: str, record_id: str) -> LiveRecord | None:
        try:
            snapshot = self.client.collection(collection).document(record_id).get()
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreError(f"Fetching {collection}/{record_id} failed: {exc}") from exc
        if not snapshot.exists:
            return None
        return self.to_record(snapshot.id, snapshot.to_dict())

    def batch_write(self, collection: str, ops: Sequence[WriteOp]) -> BatchResult:
        check_batch_size(collection, ops)
        collection_ref = self.client.collection(collection)
        batch = self.client.batch()
        for op in ops:
            doc_ref = collection_ref.document(op.record_id)
            if op.action == "set":
                if op.record is None:
                    raise StoreWriteError(collection, f"set of {op.record_id} carries no record")
                batch.set(doc_ref, self.to_document(op.record, merge=op.merge), merge=op.merge)
            elif op.action == "update":
                batch.update(doc_ref, self._update_payload(op))
            elif op.action == "delete":
                batch.delete(doc_ref)
            else:
                raise StoreWriteError(collection, f"unsupported action {op.action!r}")

        try:
            batch.commit()
        except google_exceptions.GoogleAPICallError as exc:
            raise StoreWriteError(collection, str(exc)) from exc
        return BatchResult(collection=collection, operations=len(ops), by_action=count_actions(ops))
