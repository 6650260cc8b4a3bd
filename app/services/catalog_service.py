"""
Catalog Service: local mirror of storefront product variants.

Written by the catalog refresh (upsert by variant ID) and by the inventory
reconciliation (last known POS quantity, matched by SKU or barcode). Read by
the order translator to resolve POS item codes.
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_, select, update

from app.models.db_models import CatalogVariant
from app.services.db_service import AsyncSessionLocal, upsert_statement
import logging

logger = logging.getLogger(__name__)

UPSERT_FIELDS = ("product_id", "product_title", "variant_title", "inventory_item_id", "sku", "barcode")


def variant_rows(product: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten a storefront product into one mirror row per variant."""
    rows = []
    for variant in product.get("variants") or []:
        rows.append({
            "variant_id": variant["id"],
            "product_id": product["id"],
            "product_title": product.get("title"),
            "variant_title": variant.get("title"),
            "inventory_item_id": variant.get("inventory_item_id"),
            "sku": variant.get("sku") or None,
            "barcode": variant.get("barcode") or None,
        })
    return rows


class CatalogService:

    async def get_variant(self, variant_id: int) -> Optional[CatalogVariant]:
        async with AsyncSessionLocal() as session:
            return await session.get(CatalogVariant, int(variant_id))

    async def find_by_code(self, code: str) -> Optional[CatalogVariant]:
        """First variant whose barcode or SKU equals ``code`` (barcode matches win)."""
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(CatalogVariant).where(
                    or_(CatalogVariant.barcode == code, CatalogVariant.sku == code)
                )
            )
            matches = result.scalars().all()
        for variant in matches:
            if variant.barcode == code:
                return variant
        return matches[0] if matches else None

    async def list_variants(self) -> List[CatalogVariant]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(select(CatalogVariant).order_by(CatalogVariant.variant_id))
            return list(result.scalars().all())

    async def upsert_variants(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Insert unseen variant IDs, update the descriptive fields of known ones."""
        rows = [row for row in rows if row.get("variant_id") is not None]
        if not rows:
            return 0

        async with AsyncSessionLocal() as session:
            try:
                for row in rows:
                    stmt = upsert_statement(session, CatalogVariant).values(**row)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[CatalogVariant.variant_id],
                        set_={field: stmt.excluded[field] for field in UPSERT_FIELDS if field in row},
                    )
                    await session.execute(stmt)
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Catalog upsert failed: {e}", exc_info=True)
                raise
        return len(rows)

    async def record_inventory(self, levels: Dict[str, int]) -> int:
        """Store POS quantities as last known inventory, matched by SKU or barcode."""
        touched = 0
        async with AsyncSessionLocal() as session:
            try:
                for code, quantity in levels.items():
                    result = await session.execute(
                        update(CatalogVariant)
                        .where(or_(CatalogVariant.sku == code, CatalogVariant.barcode == code))
                        .values(last_known_inventory=quantity)
                    )
                    touched += result.rowcount or 0
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Recording POS inventory failed: {e}", exc_info=True)
                raise
        return touched


catalog_service = CatalogService()
