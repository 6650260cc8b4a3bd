"""
Inventory Sync Service: catalog refresh and POS -> storefront stock reconciliation.

Reconciliation pass:
    1. read the POS stock feed for the configured warehouse (session protocol)
    2. map trimmed POS item code -> quantity
    3. store each quantity as the mirror's last known inventory
    4. list active storefront products
    5. per variant: resolve code (barcode, then SKU), compare, push on difference
    6. classify as updated / upToDate / notUpdated / notFound

Storefront calls during a pass are throttled: the storefront allows about two
calls a second, so every GET and POST is followed by ``push_delay``.

Passes are single-flight per service: a run triggered over HTTP while the
scheduled one is in progress waits for it before starting.
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.services.catalog_service import CatalogService, catalog_service, variant_rows
from app.services.pos_client import EXPORT_WINDOW_ACTION, PosClient, pos_client
from app.services.storefront_service import StorefrontService, storefront_service
from app.utils.config import settings
from app.utils.exceptions import PosLogicalError
from app.utils.parsing import parse_int
import logging

logger = logging.getLogger(__name__)

UPDATED = "updated"
UP_TO_DATE = "upToDate"
NOT_UPDATED = "notUpdated"
NOT_FOUND = "notFound"


@dataclass
class InventorySyncResult:
    updated: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)
    not_updated: List[str] = field(default_factory=list)
    not_found: List[str] = field(default_factory=list)

    def add(self, bucket: str, code: str) -> None:
        {
            UPDATED: self.updated,
            UP_TO_DATE: self.up_to_date,
            NOT_UPDATED: self.not_updated,
            NOT_FOUND: self.not_found,
        }[bucket].append(code)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            UPDATED: self.updated,
            UP_TO_DATE: self.up_to_date,
            NOT_UPDATED: self.not_updated,
            NOT_FOUND: self.not_found,
        }


def parse_stock_feed(data: Any) -> Dict[str, int]:
    """
    Build ``{item_code: quantity}`` from the POS feed payload.

    The payload is a JSON-encoded string (sometimes twice) holding either a
    list of rows or an object with a ``dat`` list, itself possibly encoded.
    """
    rows = decode_feed(data)
    if isinstance(rows, dict):
        rows = decode_feed(rows.get("dat") or rows.get("data"))
    if not isinstance(rows, list):
        logger.warning(f"POS stock feed has no rows (got {type(rows).__name__})")
        return {}

    levels: Dict[str, int] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        code = str(row.get("item_code") or "").strip()
        if not code:
            continue
        levels[code] = parse_int(row.get("item_qty", row.get("qty")))
    if rows and not levels:
        logger.warning(f"POS stock feed had {len(rows)} rows but no usable item codes")
    return levels


def decode_feed(data: Any) -> Any:
    while isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            logger.error("POS stock feed is not valid JSON")
            return None
    return data


def resolve_variant_code(variant: Dict[str, Any]) -> Optional[str]:
    """POS code for a storefront variant: barcode first, SKU fallback."""
    for candidate in (variant.get("barcode"), variant.get("sku")):
        code = (candidate or "").strip()
        if code:
            return code
    return None


class InventorySyncService:

    def __init__(
        self,
        client: Optional[PosClient] = None,
        storefront: Optional[StorefrontService] = None,
        catalog: Optional[CatalogService] = None,
        push_delay: Optional[float] = None,
    ):
        self.client = client or pos_client
        self.storefront = storefront or storefront_service
        self.catalog = catalog or catalog_service
        self.push_delay = push_delay if push_delay is not None else max(settings.INVENTORY_PUSH_DELAY, 0.501)
        self._pass_lock = asyncio.Lock()

    async def _paced(self, call, paced: bool):
        try:
            return await call
        finally:
            if paced:
                await asyncio.sleep(self.push_delay)

    # ---------- Catalog mirror refresh ----------

    async def refresh_catalog(self) -> Dict[str, int]:
        """Pull every storefront product and upsert one mirror entry per variant."""
        products = await self.storefront.list_products()
        rows = [row for product in products for row in variant_rows(product)]
        upserted = await self.catalog.upsert_variants(rows)
        logger.info(f"Catalog refresh: {len(products)} products, {upserted} variants upserted")
        return {"products": len(products), "variants": upserted}

    # ---------- POS stock feed ----------

    async def fetch_pos_stock(self, warehouse_code: Optional[str] = None) -> Dict[str, int]:
        warehouse = warehouse_code or settings.POS_WAREHOUSE_CODE
        async with self.client.new_session() as pos_session:
            response = await pos_session.submit(
                EXPORT_WINDOW_ACTION,
                settings.POS_STOCK_TARGET,
                json.dumps({"wh_code": warehouse}),
            )
        if not response.succeeded:
            raise PosLogicalError(f"POS stock feed unavailable: {response.error_message}")
        levels = parse_stock_feed(response.data)
        logger.info(f"POS stock feed for {warehouse}: {len(levels)} item codes")
        return levels

    # ---------- Storefront levels ----------

    async def current_level(self, inventory_item_id: int, paced: bool = False) -> Optional[Dict[str, Any]]:
        """The storefront inventory level at the configured location (or the first one)."""
        levels = await self._paced(self.storefront.get_inventory_levels(inventory_item_id), paced)
        if settings.SHOPIFY_LOCATION_ID is not None:
            levels = [lvl for lvl in levels if lvl.get("location_id") == settings.SHOPIFY_LOCATION_ID]
        return levels[0] if levels else None

    async def push_if_changed(self, inventory_item_id: int, available: int, paced: bool = False) -> str:
        level = await self.current_level(inventory_item_id, paced)
        if level is None or level.get("location_id") is None:
            logger.warning(f"No storefront inventory level for item {inventory_item_id}")
            return NOT_UPDATED
        if level.get("available") == available:
            return UP_TO_DATE
        await self._paced(
            self.storefront.set_inventory_level(level["location_id"], inventory_item_id, available), paced
        )
        return UPDATED

    async def push_level(self, code: str, available: int) -> Dict[str, Any]:
        """Push one POS quantity for the variant whose barcode or SKU is ``code``."""
        variant = await self.catalog.find_by_code(code)
        if variant is None:
            return {"status": NOT_FOUND, "code": code}
        status = await self.push_if_changed(variant.inventory_item_id, available)
        return {"status": status, "code": code, "variant_id": variant.variant_id}

    # ---------- Reconciliation pass ----------

    async def run_inventory_sync(self) -> InventorySyncResult:
        if self._pass_lock.locked():
            logger.info("Inventory sync already running, waiting for it to finish")
        async with self._pass_lock:
            return await self._run_pass()

    async def _run_pass(self) -> InventorySyncResult:
        levels = await self.fetch_pos_stock()
        await self.catalog.record_inventory(levels)

        products = await self.storefront.list_active_products()
        result = InventorySyncResult()

        for product in products:
            for variant in product.get("variants") or []:
                code = resolve_variant_code(variant)
                if code is None or code not in levels:
                    result.add(NOT_FOUND, code or str(variant.get("id")))
                    continue

                try:
                    bucket = await self.push_if_changed(variant["inventory_item_id"], levels[code], paced=True)
                except Exception as e:
                    logger.error(f"Inventory push failed for {code}: {e}", extra={"variant_id": variant.get("id")})
                    bucket = NOT_UPDATED
                result.add(bucket, code)

        logger.info(
            f"Inventory sync: {len(result.updated)} updated, {len(result.up_to_date)} up to date, "
            f"{len(result.not_updated)} not updated, {len(result.not_found)} not found"
        )
        return result


inventory_sync_service = InventorySyncService()
