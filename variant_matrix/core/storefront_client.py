"""
Storefront REST API client for persisting product variants.
"""

import logging
from typing import Optional, Dict, List, Any
import httpx
from urllib.parse import urljoin

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base exception for storefront API errors."""
    pass


class StorefrontClient:
    """
    Async storefront REST API client.

    Requests are sent once; failures are reported to the caller, never retried.
    """

    def __init__(
        self,
        store_url: str,
        variants_path: str = "/api/products/{product_id}/variants",
        api_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize storefront client.

        Args:
            store_url: Storefront base URL (e.g., https://shop.example.com)
            variants_path: Variant batch endpoint, with a {product_id} placeholder
            api_token: Optional bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.store_url = store_url.rstrip('/')
        self.variants_path = variants_path

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
            transport=transport
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Any] = None
    ) -> httpx.Response:
        """
        Make a single HTTP request.

        Args:
            method: HTTP method
            endpoint: API endpoint (relative to store_url)
            json_data: JSON body

        Returns:
            httpx.Response

        Raises:
            StorefrontError: On timeout, connection error or non-2xx status
        """
        url = urljoin(self.store_url + '/', endpoint.lstrip('/'))

        try:
            response = await self.client.request(method=method, url=url, json=json_data)
        except httpx.TimeoutException as e:
            raise StorefrontError(f"Timeout: {e}")
        except httpx.RequestError as e:
            raise StorefrontError(f"Request error: {e}")

        if not response.is_success:
            raise StorefrontError(f"HTTP {response.status_code}: {response.text[:200]}")

        return response

    async def save_variants(self, product_id: int, variants: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Persist a batch of variants for a product.

        Args:
            product_id: Product ID
            variants: ProductVariant dicts

        Returns:
            Response JSON, or {} when the body is empty or not JSON
        """
        endpoint = self.variants_path.format(product_id=product_id)
        logger.info(f"Saving {len(variants)} variants for product {product_id}")

        response = await self._request("POST", endpoint, json_data={"variants": variants})

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
