import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import status

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.core.redis import redis_client
from app.schemas.common import GenericApiResponse

logger = logging.getLogger(__name__)

SHOPIFY_TOKEN_KEY = "shopify:admin_token:{shop}"
DEFAULT_TOKEN_LIFETIME = 86400

CART_LINES_QUERY = (
    "query getCart($cartId: ID!) { cart(id: $cartId) "
    "{ lines(first: 100) { edges { node { id } } } } }"
)
CART_LINES_REMOVE_MUTATION = (
    "mutation cartLinesRemove($cartId: ID!, $lineIds: [ID!]!) "
    "{ cartLinesRemove(cartId: $cartId, lineIds: $lineIds) "
    "{ cart { id totalQuantity } userErrors { field message } } }"
)


@dataclass
class ShopifyOrderResult:
    order_id: str
    order_number: str | None


class ShopifyService:
    def __init__(
        self,
        shop_domain: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_version: str | None = None,
        storefront_token: str | None = None,
        token_cache=None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_delay: float = 1.0,
    ):
        self.shop_domain = shop_domain if shop_domain is not None else settings.SHOPIFY_SHOP_DOMAIN
        self.client_id = client_id if client_id is not None else settings.SHOPIFY_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.SHOPIFY_CLIENT_SECRET
        )
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.storefront_token = (
            storefront_token if storefront_token is not None else settings.SHOPIFY_STOREFRONT_TOKEN
        )
        self.token_cache = token_cache or redis_client
        self.transport = transport
        self.retry_delay = retry_delay
        self.refresh_margin = settings.SHOPIFY_TOKEN_REFRESH_MARGIN

    @property
    def is_configured(self) -> bool:
        return bool(self.shop_domain and self.client_id and self.client_secret)

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}"

    @property
    def _token_key(self) -> str:
        return SHOPIFY_TOKEN_KEY.format(shop=self.shop_domain)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=30.0)

    async def _get_cached_token(self) -> str | None:
        return await self.token_cache.get(self._token_key)

    async def _cache_token(self, token: str, expires_in: int) -> None:
        ttl = max(expires_in - self.refresh_margin, 60)
        await self.token_cache.set(self._token_key, token, ttl=ttl)

    async def _clear_token(self) -> None:
        await self.token_cache.delete(self._token_key)

    async def authenticate(self, max_retries: int = 3) -> str | None:
        """Client-credentials exchange for an Admin API token, cached in Redis."""
        cached_token = await self._get_cached_token()
        if cached_token:
            logger.info("Using cached Shopify admin token")
            return cached_token

        for attempt in range(max_retries):
            try:
                async with self._client() as client:
                    response = await client.post(
                        f"{self.base_url}/admin/oauth/access_token",
                        data={
                            "grant_type": "client_credentials",
                            "client_id": self.client_id,
                            "client_secret": self.client_secret,
                        },
                    )

                if response.status_code == status.HTTP_200_OK:
                    try:
                        data = response.json()
                    except ValueError:
                        logger.warning(
                            f"Shopify auth attempt {attempt + 1}/{max_retries} returned "
                            f"a non-JSON body: {response.text[:200]}"
                        )
                        data = {}
                    token = data.get("access_token") if isinstance(data, dict) else None

                    if token:
                        expires_in = int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME)
                        await self._cache_token(token, expires_in)
                        logger.info("Shopify admin token cached")
                        return token

                    logger.error("Shopify OAuth response without access_token")
                else:
                    logger.warning(
                        f"Shopify auth attempt {attempt + 1}/{max_retries} failed: "
                        f"{response.status_code} {response.text[:200]}"
                    )

            except httpx.HTTPError as e:
                logger.warning(
                    f"Shopify auth attempt {attempt + 1}/{max_retries} error: {e}"
                )

            if attempt < max_retries - 1:
                wait_time = self.retry_delay * 2**attempt
                logger.info(f"Retrying in {wait_time} seconds...")
                await asyncio.sleep(wait_time)

        logger.error(f"Shopify auth failed after {max_retries} attempts")
        return None

    async def execute_request(
        self,
        endpoint: str,
        method: str = "GET",
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry_on_401: bool = True,
    ) -> GenericApiResponse:
        token = await self.authenticate()
        if not token:
            return GenericApiResponse(
                success=False,
                message="Authentication Failed",
                status_code=status.HTTP_401_UNAUTHORIZED,
                data=None,
            )

        url = f"{self.base_url}/admin/api/{self.api_version}{endpoint}"
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": token,
        }

        try:
            async with self._client() as client:
                response = await client.request(
                    method=method,
                    url=url,
                    json=payload,
                    params=params,
                    headers=headers,
                )

            if response.status_code == status.HTTP_401_UNAUTHORIZED and retry_on_401:
                await self._clear_token()
                logger.warning("Shopify token rejected, retrying")
                return await self.execute_request(
                    endpoint=endpoint,
                    method=method,
                    payload=payload,
                    params=params,
                    retry_on_401=False,
                )

            if response.status_code in [
                status.HTTP_201_CREATED,
                status.HTTP_200_OK,
                status.HTTP_204_NO_CONTENT,
            ]:
                data = {}
                if (
                    response.status_code != status.HTTP_204_NO_CONTENT
                    and response.text.strip()
                ):
                    try:
                        data = response.json()
                    except ValueError:
                        logger.error(
                            f"Shopify returned a non-JSON {response.status_code} body for {endpoint}"
                        )
                        return GenericApiResponse(
                            success=False,
                            message=f"Invalid JSON response from {endpoint}",
                            status_code=response.status_code,
                            data={"message": response.text[:500]},
                        )

                return GenericApiResponse(
                    success=True,
                    message=f"Calling {endpoint} successful",
                    status_code=response.status_code,
                    data=data,
                )

            error_data = {}
            if response.text.strip():
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {"message": response.text}

            return GenericApiResponse(
                success=False,
                message=f"Request to {endpoint} failed",
                status_code=response.status_code,
                data=error_data,
            )

        except httpx.HTTPError as e:
            logger.error(f"Shopify request error: {e}")
            return GenericApiResponse(
                success=False,
                message=f"Request to {endpoint} failed: {str(e)}",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                data=None,
            )

    async def create_order(self, payload: dict[str, Any]) -> ShopifyOrderResult:
        if not self.is_configured:
            raise ExternalServiceError(
                "Shopify configuration missing",
                details={"step": "config"},
            )

        try:
            result = await self.execute_request(
                endpoint="/orders.json",
                method="POST",
                payload=payload,
            )
        except Exception as e:
            logger.exception("[shopify] unexpected error during order creation")
            raise ExternalServiceError(
                f"Shopify order request failed: {e}",
                details={"step": "create_order"},
            ) from e

        if not result.success:
            logger.error(
                f"[shopify] order creation failed: {result.status_code} {result.data}"
            )
            step = "auth" if result.message == "Authentication Failed" else "create_order"
            raise ExternalServiceError(
                f"Shopify error {result.status_code}",
                details={"step": step, "status_code": result.status_code, "response": result.data},
            )

        data = result.data if isinstance(result.data, dict) else {}
        order = data.get("order") or {}
        if not isinstance(order, dict) or not order.get("id"):
            raise ExternalServiceError(
                "Shopify response without order id",
                details={"step": "create_order", "status_code": result.status_code},
            )

        order_number = order.get("order_number")
        logger.info(f"[shopify] order created #{order_number} (ID: {order['id']})")
        return ShopifyOrderResult(
            order_id=str(order["id"]),
            order_number=str(order_number) if order_number is not None else None,
        )

    async def _storefront_query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post(
                f"{self.base_url}/api/{self.api_version}/graphql.json",
                json={"query": query, "variables": variables},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Storefront-Access-Token": self.storefront_token,
                },
            )
        response.raise_for_status()
        return response.json()

    async def clear_cart(self, cart_id: str) -> bool:
        """Empty the shopper's storefront cart after checkout completes."""
        if not self.shop_domain or not self.storefront_token:
            logger.info("[shopify] storefront not configured, skipping cart clear")
            return False

        cart_data = await self._storefront_query(CART_LINES_QUERY, {"cartId": cart_id})
        if cart_data.get("errors"):
            logger.warning(f"[shopify] cart lookup errors: {cart_data['errors']}")
            return False

        cart = (cart_data.get("data") or {}).get("cart") or {}
        edges = (cart.get("lines") or {}).get("edges") or []
        line_ids = [edge["node"]["id"] for edge in edges]
        if not line_ids:
            return True

        remove_data = await self._storefront_query(
            CART_LINES_REMOVE_MUTATION,
            {"cartId": cart_id, "lineIds": line_ids},
        )
        user_errors = (
            ((remove_data.get("data") or {}).get("cartLinesRemove") or {}).get("userErrors") or []
        )
        if user_errors:
            logger.error(f"[shopify] cartLinesRemove errors: {user_errors}")
            return False

        logger.info(f"[shopify] cart {cart_id} cleared")
        return True


def get_shopify_service() -> ShopifyService:
    return ShopifyService()
