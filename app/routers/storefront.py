"""
Storefront Router: manage the storefront's webhook subscriptions.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel
from app.services.storefront_service import IMPLEMENTED_WEBHOOK_TOPICS, storefront_service
from app.utils.exceptions import StorefrontError

router = APIRouter()


class WebhookSubscription(BaseModel):
    topic: Optional[str] = None


def _raise(e: StorefrontError):
    raise HTTPException(status_code=e.status_code or 502, detail=e.message)


@router.post("/webhooks")
async def create_webhook(body: WebhookSubscription):
    if not body.topic:
        raise HTTPException(status_code=400, detail="Webhook subscription must not be empty")
    if body.topic not in IMPLEMENTED_WEBHOOK_TOPICS:
        raise HTTPException(status_code=400, detail="Your webhook topic subscription has not been implemented yet")
    try:
        return await storefront_service.create_webhook(body.topic)
    except StorefrontError as e:
        _raise(e)


@router.get("/webhooks/count")
async def count_webhooks(topic: Optional[str] = None):
    try:
        return await storefront_service.count_webhooks(topic)
    except StorefrontError as e:
        _raise(e)


@router.get("/webhooks")
async def list_webhooks(since_id: Optional[str] = None):
    try:
        return await storefront_service.list_webhooks(since_id)
    except StorefrontError as e:
        _raise(e)


@router.get("/webhooks/{webhook_id}")
async def get_webhook(webhook_id: str):
    try:
        return await storefront_service.get_webhook(webhook_id)
    except StorefrontError as e:
        _raise(e)


@router.put("/webhooks/{webhook_id}")
async def modify_webhook(webhook_id: str, body: Dict[str, Any] = Body(...)):
    try:
        return await storefront_service.modify_webhook(webhook_id, body)
    except StorefrontError as e:
        _raise(e)


@router.delete("/webhooks/{webhook_id}")
async def delete_webhook(webhook_id: str):
    try:
        return await storefront_service.delete_webhook(webhook_id)
    except StorefrontError as e:
        _raise(e)
