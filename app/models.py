from sqlalchemy import JSON, Column, String, UniqueConstraint

from app.database import Base

ORDERS = "orders"
QUOTES = "quotes"


class Document(Base):
    """One document of a tenant's ``orders`` or ``quotes`` collection."""

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("brand_id", "collection", "transaction_id", name="uq_documents_transaction"),
    )

    id = Column(String, primary_key=True)                  # store-generated uuid hex
    brand_id = Column(String, nullable=False, index=True)
    collection = Column(String, nullable=False, index=True)  # orders | quotes
    transaction_id = Column(String, nullable=True, index=True)
    tx_ref = Column(String, nullable=True, index=True)
    tracking_ref = Column(String, nullable=True, index=True)
    data = Column(JSON, nullable=False)
