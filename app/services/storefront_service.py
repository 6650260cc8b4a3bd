"""
Storefront Service: Shopify Admin REST API (products, inventory levels, webhooks).

List endpoints are paginated with a ``Link: <...>; rel="next"`` header; the
next page's query parameters are carried forward until no next link remains.
"""
import httpx
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlsplit
from app.utils.config import settings
from app.utils.exceptions import StorefrontError
import logging

logger = logging.getLogger(__name__)

IMPLEMENTED_WEBHOOK_TOPICS = ["orders/create"]


def next_page_params(response: httpx.Response) -> Optional[Dict[str, str]]:
    """Query parameters of the ``rel="next"`` link, or None on the last page."""
    next_link = response.links.get("next")
    if not next_link or not next_link.get("url"):
        return None
    return dict(parse_qsl(urlsplit(next_link["url"]).query))


class StorefrontService:
    """Thin async client for the storefront Admin API."""

    def __init__(
        self,
        shop_domain: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        self.shop_domain = shop_domain or settings.SHOPIFY_SHOP_DOMAIN
        self.access_token = access_token or settings.SHOPIFY_ACCESS_TOKEN
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"
        self.headers = {
            "X-Shopify-Access-Token": self.access_token or "",
            "Accept": "application/json",
        }

    def url(self, resource: str) -> str:
        return f"{self.base_url}/{resource}.json"

    async def _request(self, method: str, resource: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=settings.HTTP_TIMEOUT,
                follow_redirects=True,
                max_redirects=settings.HTTP_MAX_REDIRECTS,
            ) as client:
                response = await client.request(method, self.url(resource), headers=self.headers, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            logger.error(f"Storefront {method} {resource} failed: {e.response.status_code} {e.response.text}")
            raise StorefrontError(
                f"{method} {resource} failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Storefront {method} {resource} error: {e}")
            raise StorefrontError(f"{method} {resource} failed: {e}") from e

    async def paginate(self, resource: str, key: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Collect ``key`` from every page of a list endpoint."""
        items: List[Dict[str, Any]] = []
        query = dict(params or {})
        pages = 0
        while query is not None:
            response = await self._request("GET", resource, params=query)
            items.extend(response.json().get(key) or [])
            pages += 1
            query = next_page_params(response)
        logger.debug(f"Fetched {len(items)} {key} over {pages} page(s)")
        return items

    # ---------- Products & inventory ----------

    async def list_products(self, **filters) -> List[Dict[str, Any]]:
        return await self.paginate("products", "products", {"limit": 250, **filters})

    async def list_active_products(self) -> List[Dict[str, Any]]:
        return await self.list_products(status="active", published_status="published")

    async def get_inventory_levels(self, inventory_item_id: int) -> List[Dict[str, Any]]:
        return await self.paginate(
            "inventory_levels", "inventory_levels",
            {"limit": 50, "inventory_item_ids": inventory_item_id},
        )

    async def set_inventory_level(self, location_id: int, inventory_item_id: int, available: int) -> Dict[str, Any]:
        response = await self._request(
            "POST", "inventory_levels/set",
            json={"location_id": location_id, "inventory_item_id": inventory_item_id, "available": available},
        )
        return response.json()

    # ---------- Webhook subscriptions ----------

    async def create_webhook(self, topic: str) -> Dict[str, Any]:
        body = {
            "webhook": {
                "topic": topic,
                "address": f"{settings.SERVER_URL.rstrip('/')}/webhook/{topic}",
                "format": "json",
            }
        }
        response = await self._request("POST", "webhooks", json=body)
        return response.json()

    async def list_webhooks(self, since_id: Optional[str] = None) -> Dict[str, Any]:
        params = {"since_id": since_id} if since_id else None
        response = await self._request("GET", "webhooks", params=params)
        return response.json()

    async def count_webhooks(self, topic: Optional[str] = None) -> Dict[str, Any]:
        params = {"topic": topic} if topic else None
        response = await self._request("GET", "webhooks/count", params=params)
        return response.json()

    async def get_webhook(self, webhook_id: str) -> Dict[str, Any]:
        response = await self._request("GET", f"webhooks/{webhook_id}")
        return response.json()

    async def modify_webhook(self, webhook_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("PUT", f"webhooks/{webhook_id}", json=body)
        return response.json()

    async def delete_webhook(self, webhook_id: str) -> Dict[str, Any]:
        response = await self._request("DELETE", f"webhooks/{webhook_id}")
        return response.json() if response.content else {}


storefront_service = StorefrontService()
