import logging
from typing import Any, Dict, List, Optional

import requests

from .config import Config
from .errors import ShopifyAPIError

logger = logging.getLogger(__name__)


class ShopifyClient:
    """Client for the Shopify Admin REST API."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.base_url = config.shopify_rest_url
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": config.SHOPIFY_ACCESS_TOKEN,
            }
        )

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        response = self.session.request(method, url, **kwargs)
        if not response.ok:
            raise ShopifyAPIError(response.status_code, response.text)
        return response

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        return self._send(method, f"{self.base_url}/{endpoint}.json", **kwargs).json()

    def search_customers(self, email: str) -> List[Dict[str, Any]]:
        """
        Find customers by email.

        Args:
            email: Customer email address

        Returns:
            List of customer dicts, best match first
        """
        data = self._request("GET", "customers/search", params={"query": f"email:{email}"})
        return data.get("customers", [])

    def update_customer(self, customer_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request(
            "PUT",
            f"customers/{customer_id}",
            json={"customer": {"id": customer_id, **fields}},
        )
        return data.get("customer", {})

    def create_customer(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", "customers", json={"customer": fields})
        return data["customer"]

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an order.

        Args:
            payload: Full order body, {"order": {...}}

        Returns:
            dict: The created order
        """
        data = self._request("POST", "orders", json=payload)
        return data["order"]

    def list_orders(self, created_at_min: str, limit: int = 250) -> List[Dict[str, Any]]:
        """
        Fetch every order created at or after a timestamp.

        Follows the Link header page_info cursor until the last page.

        Args:
            created_at_min: ISO 8601 timestamp
            limit: Orders per page (Shopify max is 250)

        Returns:
            List of order dicts from the Shopify API.
        """
        url: Optional[str] = f"{self.base_url}/orders.json"
        params: Optional[Dict[str, Any]] = {
            "status": "any",
            "created_at_min": created_at_min,
            "limit": limit,
        }
        orders: List[Dict[str, Any]] = []
        while url:
            response = self._send("GET", url, params=params)
            orders.extend(response.json().get("orders", []))
            # The next URL already carries page_info and limit; filters are not allowed with it.
            url = response.links.get("next", {}).get("url")
            params = None
        return orders
