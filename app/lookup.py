from typing import Optional

from app.models import ORDERS
from app.store import DocumentStore
from app.timestamps import normalize


class OrderLookup:
    """Read-only order status by tracking reference, scoped to one brand."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def find(self, tracking_ref: str, brand_id: str) -> Optional[dict]:
        doc = self.store.find_one(brand_id, ORDERS, "trackingRef", tracking_ref)
        if doc is None:
            return None

        data = doc.data
        return {
            **data,
            "brandId": brand_id,
            "createdAt": normalize(data.get("createdAt")),
            "verifiedAt": normalize(data.get("verifiedAt")),
            "statusHistory": [
                {**entry, "changedAt": normalize(entry.get("changedAt"))}
                for entry in (data.get("statusHistory") or [])
            ],
        }
