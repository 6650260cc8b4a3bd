"""
Webhooks Router: storefront order webhooks.

Orders are acknowledged as soon as the signature and API version check out;
the POS sync runs in the background and leaves an unplaced record on failure.
"""
import base64
import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from app.services.order_sync_service import order_sync_service
from app.utils.config import settings
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_signature(raw_body: bytes, signature: Optional[str], is_test: bool = False) -> bool:
    secret = settings.SHOPIFY_TEST_WEBHOOK_SECRET if is_test else settings.SHOPIFY_WEBHOOK_SECRET
    if not signature or not secret:
        return False
    return hmac.compare_digest(compute_signature(raw_body, secret), signature)


async def sync_order_in_background(order: dict):
    try:
        await order_sync_service.sync_order(order)
    except Exception as e:
        logger.error(f"Order {order.get('order_number')} left for recovery: {e}")


@router.post("/orders/create")
@limiter.limit(f"{settings.RATE_LIMIT_REQUESTS}/{settings.RATE_LIMIT_PERIOD}")
async def receive_order_create(request: Request, background_tasks: BackgroundTasks):
    """Storefront 'orders/create' webhook."""
    raw_body = await request.body()
    is_test = request.headers.get("x-shopify-test") == "true"

    if not verify_signature(raw_body, request.headers.get("x-shopify-hmac-sha256"), is_test=is_test):
        logger.warning("Invalid storefront webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    version = request.headers.get("x-shopify-api-version")
    if version not in settings.accepted_webhook_versions:
        logger.warning(f"Rejected webhook with API version {version}")
        raise HTTPException(status_code=400, detail="Unsupported Shopify API version")

    try:
        order = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")

    logger.info(f"Order {order.get('order_number')} received (test={is_test})")
    background_tasks.add_task(sync_order_in_background, order)
    return {"status": "accepted", "order_number": order.get("order_number")}
