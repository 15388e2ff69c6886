"""
Tenant-partitioned document store on top of SQLAlchemy.

Documents live in per-brand ``orders`` and ``quotes`` collections and are
found by equality on a small set of indexed fields.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import get_session
from app.exceptions import DuplicateOrderError, StoreError
from app.models import ORDERS, Document
from app.timestamps import to_stored

# document field -> indexed column
INDEXED_FIELDS = {
    "transaction_id": "transaction_id",
    "tx_ref": "tx_ref",
    "trackingRef": "tracking_ref",
}


@dataclass
class StoredDocument:
    id: str
    data: dict


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_stored(value)
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _index_value(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class DocumentStore:
    def __init__(self, session: Session):
        self.session = session

    def add(self, brand_id: str, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        encoded = _encode(data)
        row = Document(id=doc_id, brand_id=brand_id, collection=collection, data=encoded)
        for field, column in INDEXED_FIELDS.items():
            setattr(row, column, _index_value(encoded.get(field)))
        transaction_id = row.transaction_id

        try:
            self.session.add(row)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if collection == ORDERS and transaction_id:
                raise DuplicateOrderError(transaction_id) from exc
            raise StoreError(f"Could not write to {collection}: {exc}") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Could not write to {collection}: {exc}") from exc
        return doc_id

    def find_one(self, brand_id: str, collection: str, field: str, value: Any) -> Optional[StoredDocument]:
        if field not in INDEXED_FIELDS:
            raise ValueError(f"{field} is not an indexed field")
        column = getattr(Document, INDEXED_FIELDS[field])
        try:
            row = (
                self.session.query(Document)
                .filter(Document.brand_id == brand_id)
                .filter(Document.collection == collection)
                .filter(column == _index_value(value))
                .first()
            )
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not query {collection}: {exc}") from exc
        if row is None:
            return None
        return StoredDocument(id=row.id, data=dict(row.data))

    def get(self, brand_id: str, collection: str, doc_id: str) -> Optional[StoredDocument]:
        try:
            row = self._row(brand_id, collection, doc_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not read {collection}/{doc_id}: {exc}") from exc
        if row is None:
            return None
        return StoredDocument(id=row.id, data=dict(row.data))

    def update(self, brand_id: str, collection: str, doc_id: str, fields: dict) -> None:
        """Merge ``fields`` into an existing document; a missing document is an error."""
        try:
            row = self._row(brand_id, collection, doc_id)
            if row is None:
                raise StoreError(f"No document {collection}/{doc_id} for brand {brand_id}")
            encoded = _encode(fields)
            # reassign so the JSON column is flagged dirty
            row.data = {**row.data, **encoded}
            for field, column in INDEXED_FIELDS.items():
                if field in encoded:
                    setattr(row, column, _index_value(encoded[field]))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Could not update {collection}/{doc_id}: {exc}") from exc

    def _row(self, brand_id: str, collection: str, doc_id: str) -> Optional[Document]:
        return (
            self.session.query(Document)
            .filter_by(id=doc_id, brand_id=brand_id, collection=collection)
            .first()
        )


def get_store(session: Session = Depends(get_session)) -> Iterator[DocumentStore]:
    yield DocumentStore(session)
