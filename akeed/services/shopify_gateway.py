"""Shopify Admin GraphQL integration."""

import logging
from typing import Any

import httpx

from akeed.config import settings

logger = logging.getLogger(__name__)

TAGS_ADD_MUTATION = """
mutation tagsAdd($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) {
    node {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""


def order_gid(external_order_id: str) -> str:
    return f"gid://shopify/Order/{external_order_id}"


def normalize_store_domain(store_url: str) -> str:
    domain = store_url.strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


class ShopifyGateway:
    """Thin wrapper around the Shopify Admin GraphQL API.

    Credentials are per store, so every call receives the integration that
    owns the order.
    """

    def __init__(self) -> None:
        self._api_version = settings.shopify_api_version

    def _graphql_url(self, store_url: str) -> str:
        return (
            f"https://{normalize_store_domain(store_url)}"
            f"/admin/api/{self._api_version}/graphql.json"
        )

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    def _graphql(
        self, store_url: str, access_token: str, query: str, variables: dict[str, Any]
    ) -> dict[str, Any]:
        with httpx.Client(timeout=30) as client:
            resp = client.post(
                self._graphql_url(store_url),
                json={"query": query, "variables": variables},
                headers=self._headers(access_token),
            )
        if resp.status_code >= 400:
            logger.error("Shopify GraphQL HTTP %s for %s", resp.status_code, store_url)
            raise ValueError(f"Shopify API returned HTTP {resp.status_code}")
        data: dict[str, Any] = resp.json()
        errors = data.get("errors")
        if errors:
            message = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            logger.error("Shopify GraphQL errors for %s: %s", store_url, message)
            raise ValueError(message)
        return data.get("data") or {}

    def add_order_tag(self, integration: Any, external_order_id: str, tag: str) -> str | None:
        """Add ``tag`` to the store order; returns the tagged node id."""
        access_token = getattr(integration, "access_token", None)
        store_url = getattr(integration, "platform_store_url", None)
        if not access_token or not store_url:
            raise RuntimeError("Shopify integration has no store credentials")

        data = self._graphql(
            store_url,
            access_token,
            TAGS_ADD_MUTATION,
            {"id": order_gid(external_order_id), "tags": [tag]},
        )
        result = data.get("tagsAdd") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            message = "; ".join(error.get("message", "") for error in user_errors)
            logger.error(
                "Shopify tagsAdd rejected for order %s: %s", external_order_id, message
            )
            raise ValueError(message or "Failed to tag order")

        node_id = (result.get("node") or {}).get("id")
        logger.info("Tagged Shopify order %s with %r", external_order_id, tag)
        return node_id


shopify_gateway = ShopifyGateway()
