"""
Payment confirmation engine.

Both confirmation paths (provider webhook and client-initiated verify) end up
in ``ConfirmationEngine.record_confirmed_payment``. Deduplication is a
query-then-insert on ``transaction_id``: two confirmations of the same
transaction racing each other can both miss the query. The unique constraint
on ``(brand_id, collection, transaction_id)`` catches the second insert, which
is then reported as already processed.

Linking the matching quote happens after the order is committed and is
best-effort: its outcome is a ``QuoteLinkResult`` that is logged, never raised.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

from app.exceptions import DuplicateOrderError, StoreError
from app.logging_config import get_logger
from app.models import ORDERS, QUOTES
from app.store import DocumentStore, StoredDocument
from app.timestamps import server_timestamp

logger = get_logger(__name__)

ORDER_STATUS_PAID = "paid"
QUOTE_STATUS_PAID = "Paid"

# Fields of a new order that caller-supplied order data may not override
PROTECTED_ORDER_FIELDS = frozenset({
    "transaction_id",
    "tx_ref",
    "amount",
    "currency",
    "status",
    "createdAt",
    "verifiedAt",
    "statusHistory",
})


@dataclass
class OrderResult:
    order_id: str
    order: dict
    already_processed: bool = False
    quote_link: Optional["QuoteLinkResult"] = field(default=None, repr=False)


@dataclass
class QuoteLinkResult:
    linked: bool
    quote_id: Optional[str] = None
    error: Optional[str] = None


class ConfirmationEngine:
    def __init__(self, store: DocumentStore, brand_id: str):
        self.store = store
        self.brand_id = brand_id

    def find_order(self, transaction_id: Any) -> Optional[StoredDocument]:
        if transaction_id is None or transaction_id == "":
            return None
        return self.store.find_one(self.brand_id, ORDERS, "transaction_id", transaction_id)

    def record_confirmed_payment(
        self,
        transaction_id: Any,
        tx_ref: Optional[str],
        amount: Any,
        currency: Optional[str],
        raw_payload: Any,
        raw_field: str = "flutterwave_webhook",
        extra_fields: Optional[dict] = None,
        quote_id: Optional[str] = None,
    ) -> OrderResult:
        """
        Persist the order for a provider-confirmed payment, exactly once per
        transaction id, then try to mark the originating quote as paid.

        ``amount`` and ``currency`` must come from the provider, never from the
        client. ``quote_id`` links that quote directly instead of looking one
        up by ``tx_ref``.
        """
        existing = self.find_order(transaction_id)
        if existing is not None:
            logger.info(
                "payment_already_processed",
                brand_id=self.brand_id,
                transaction_id=transaction_id,
                order_id=existing.id,
            )
            return OrderResult(order_id=existing.id, order=existing.data, already_processed=True)

        now = server_timestamp()
        order = {k: v for k, v in (extra_fields or {}).items() if k not in PROTECTED_ORDER_FIELDS}
        order.update({
            "transaction_id": str(transaction_id) if transaction_id not in (None, "") else None,
            "tx_ref": tx_ref or "",
            "amount": amount,
            "currency": currency,
            "status": ORDER_STATUS_PAID,
            raw_field: raw_payload,
            "createdAt": now,
            "verifiedAt": now,
            "statusHistory": [{"status": ORDER_STATUS_PAID, "changedAt": now}],
        })

        try:
            order_id = self.store.add(self.brand_id, ORDERS, order)
        except DuplicateOrderError:
            existing = self.find_order(transaction_id)
            if existing is None:
                raise
            logger.warning(
                "payment_confirmation_race",
                brand_id=self.brand_id,
                transaction_id=transaction_id,
                order_id=existing.id,
            )
            return OrderResult(order_id=existing.id, order=existing.data, already_processed=True)

        logger.info(
            "order_created",
            brand_id=self.brand_id,
            transaction_id=transaction_id,
            tx_ref=tx_ref,
            order_id=order_id,
        )

        link = self.link_quote(order_id, tx_ref=tx_ref, quote_id=quote_id)
        return OrderResult(order_id=order_id, order=order, quote_link=link)

    def link_quote(
        self,
        order_id: str,
        tx_ref: Optional[str] = None,
        quote_id: Optional[str] = None,
    ) -> QuoteLinkResult:
        """Mark the quote behind an order as paid, unless it already is. Never raises."""
        try:
            if quote_id:
                quote = self.store.get(self.brand_id, QUOTES, quote_id)
                if quote is None:
                    raise StoreError(f"No quote {quote_id} for brand {self.brand_id}")
            elif tx_ref:
                quote = self.store.find_one(self.brand_id, QUOTES, "tx_ref", tx_ref)
                if quote is None:
                    return QuoteLinkResult(linked=False)
            else:
                return QuoteLinkResult(linked=False)
            target = quote.id

            # a quote is paid once; later orders on the same tx_ref leave it alone
            if quote.data.get("status") == QUOTE_STATUS_PAID:
                logger.info(
                    "quote_already_paid",
                    brand_id=self.brand_id,
                    quote_id=target,
                    order_id=order_id,
                    paid_order_id=quote.data.get("orderId"),
                )
                return QuoteLinkResult(linked=False, quote_id=target)

            self.store.update(self.brand_id, QUOTES, target, {
                "status": QUOTE_STATUS_PAID,
                "orderId": order_id,
                "paidAt": server_timestamp(),
            })
        except Exception as exc:
            logger.warning(
                "quote_update_failed",
                brand_id=self.brand_id,
                order_id=order_id,
                tx_ref=tx_ref,
                quote_id=quote_id,
                exc_info=True,
            )
            return QuoteLinkResult(linked=False, quote_id=quote_id, error=str(exc))

        logger.info("quote_marked_paid", brand_id=self.brand_id, quote_id=target, order_id=order_id)
        return QuoteLinkResult(linked=True, quote_id=target)
