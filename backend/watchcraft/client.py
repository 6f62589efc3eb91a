# Overview: HTTP client for the shop API with a read-only cache of server responses.

# backend/watchcraft/client.py
"""
Client-side access to the shop API.

ShopCache holds the last server copy of each customer, item, sale and
service. It is written ONLY from successful responses and never derives
anything itself: a customer's net value shown to a caller is always the
number the server computed. After a sale or service change the affected
customer and item come back in the same response and replace the cached
copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx


class ShopClientError(Exception):
    """Non-2xx answer from the API."""

    def __init__(self, status_code: int, message: str, details: Optional[Dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


@dataclass
class ShopCache:
    customers: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    items: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    sales: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    services: Dict[int, Dict[str, Any]] = field(default_factory=dict)

    def absorb(self, body: Dict[str, Any]) -> None:
        """Store every entity a response carries, replacing older copies."""
        for key, bucket in (
            ("customer", self.customers),
            ("item", self.items),
            ("sale", self.sales),
            ("service", self.services),
        ):
            entity = body.get(key)
            if entity:
                bucket[entity["id"]] = entity

        for key, bucket in (
            ("customers", self.customers),
            ("items", self.items),
            ("sales", self.sales),
            ("services", self.services),
        ):
            for entity in body.get(key) or []:
                bucket[entity["id"]] = entity

    def clear(self) -> None:
        self.customers.clear()
        self.items.clear()
        self.sales.clear()
        self.services.clear()


class ShopClient:
    """
    HTTP client wrapper with actor attribution and a response cache.

    Pass `transport` (e.g. httpx.WSGITransport(app=app)) to talk to an
    in-process app.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        actor_id: Optional[int] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        cache: Optional[ShopCache] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.actor_id = actor_id
        self.cache = cache if cache is not None else ShopCache()
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "ShopClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.actor_id is not None:
            headers["X-Actor-Id"] = str(self.actor_id)
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self.client.request(method, path, headers=self._headers(), **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            raise ShopClientError(
                response.status_code,
                body.get("error") or response.reason_phrase,
                body.get("details"),
            )

        self.cache.absorb(body)
        return body

    # Inventory

    def list_items(self, **params) -> list[Dict[str, Any]]:
        return self._request("GET", "/api/inventory", params=params)["items"]

    def get_item(self, item_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/inventory/{item_id}")["item"]

    def create_item(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/inventory", json=data)["item"]

    def move_item(self, item_id: int, outlet: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", f"/api/inventory/{item_id}/move", json={"outlet": outlet, "reason": reason})["item"]

    # Customers

    def get_customer(self, customer_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/customers/{customer_id}")["customer"]

    def create_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/customers", json=data)["customer"]

    # Sales

    def create_sale(self, **data) -> Dict[str, Any]:
        return self._request("POST", "/api/sales", json=data)["sale"]

    def delete_sale(self, sale_id: int) -> None:
        self._request("DELETE", f"/api/sales/{sale_id}")
        self.cache.sales.pop(sale_id, None)

    # Services

    def create_service(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/services", json=data)["service"]

    def update_service_status(self, service_id: int, status: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/services/{service_id}/status", json={"status": status})["service"]

    def complete_service(self, service_id: int, **completion) -> Dict[str, Any]:
        return self._request("POST", f"/api/services/{service_id}/complete", json=completion)["service"]
