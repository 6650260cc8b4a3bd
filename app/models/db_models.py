from sqlalchemy import Column, String, Boolean, Integer, BigInteger, DateTime, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class TransactionRecord(Base):
    """One synchronization attempt per storefront order, keyed by POS transaction number."""
    __tablename__ = "transaction_records"

    trx_no = Column(String(32), primary_key=True)
    order_body = Column(JSON, nullable=False)  # verbatim storefront order, replayed by recovery
    order_placed = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True))

    def to_dict(self) -> dict:
        return {
            "trx_no": self.trx_no,
            "order_body": self.order_body,
            "order_placed": self.order_placed,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class CatalogVariant(Base):
    """Local mirror of a storefront product variant."""
    __tablename__ = "catalog_variants"

    variant_id = Column(BigInteger, primary_key=True, autoincrement=False)
    product_id = Column(BigInteger, nullable=False)
    product_title = Column(String(255))
    variant_title = Column(String(255))
    inventory_item_id = Column(BigInteger, nullable=False)
    sku = Column(String(100), index=True)
    barcode = Column(String(100), index=True)
    last_known_inventory = Column(Integer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True))

    @property
    def pos_code(self):
        """POS item code for this variant: barcode first, SKU fallback."""
        barcode = (self.barcode or "").strip()
        if barcode:
            return barcode
        sku = (self.sku or "").strip()
        return sku or None


class PosRequestRecord(Base):
    """Audit copy of a POS transaction document the POS accepted."""
    __tablename__ = "pos_request_records"

    trx_no = Column(String(32), primary_key=True)
    window_action = Column(String(50))
    window_action_target = Column(String(20))
    header = Column(JSON)
    lines = Column(JSON)
    payments = Column(JSON)
    confirmation = Column(String(20), default="confirmed")  # 'confirmed' | 'duplicate'
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
