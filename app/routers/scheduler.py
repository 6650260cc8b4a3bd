"""
Scheduler Router: on-demand triggers for the scheduled sync tasks.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from app.services.inventory_sync_service import inventory_sync_service
from app.services.recovery_service import recovery_service
from app.utils.exceptions import SyncError
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


class InventoryPushRequest(BaseModel):
    sku: str = Field(..., min_length=1, description="POS item code (barcode or SKU)")
    inventory: int = Field(..., description="Available quantity to push")


@router.put("/scheduler/product-variants")
async def update_product_variants():
    """Refresh the catalog mirror from the storefront."""
    logger.info("Update product variants")
    try:
        return await inventory_sync_service.refresh_catalog()
    except SyncError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.put("/scheduler/inventory-sync")
async def run_inventory_sync():
    """Run one full POS -> storefront inventory reconciliation pass."""
    try:
        result = await inventory_sync_service.run_inventory_sync()
    except SyncError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return result.to_dict()


@router.put("/scheduler/inventory")
async def update_storefront_inventory(body: InventoryPushRequest):
    """Push one item's quantity to the storefront if it differs."""
    logger.info("Update storefront inventory")
    try:
        result = await inventory_sync_service.push_level(body.sku.strip(), body.inventory)
    except SyncError as e:
        raise HTTPException(status_code=502, detail=e.message)
    if result["status"] == "notFound":
        raise HTTPException(status_code=404, detail=f"No catalog variant for code {body.sku}")
    if result["status"] == "notUpdated":
        raise HTTPException(status_code=500, detail="Cannot update storefront inventory")
    return result


@router.post("/transaction-records/incomplete-orders")
async def place_incomplete_orders():
    """Replay every order the POS has not confirmed."""
    result = await recovery_service.run_incomplete_order_recovery()
    return {
        **result,
        "message": f"Updated incomplete orders. (Total orders: {result['total']})",
    }
