import logging
import requests
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import CarrierConfig
from input_validation import sanitize_api_response


@dataclass
class CarrierResponse:
    """Outcome of one carrier HTTP call. status is 0 when no HTTP response was received."""
    status: int
    data: Any = None
    errors: List[str] = field(default_factory=list)

    @property
    def transport_ok(self) -> bool:
        return 200 <= self.status < 300 and self.data is not None


ORDER_FULFILLMENT_FIELDS = """
    id
    name
    fulfillments(first: 20) {
      id
      name
      status
      displayStatus
      createdAt
      trackingInfo(first: 10) {
        number
        url
        company
      }
    }
"""

ORDER_BY_ID_QUERY = """
query OrderFulfillments($id: ID!) {
  order(id: $id) {%s}
}
""" % ORDER_FULFILLMENT_FIELDS

ORDER_SEARCH_QUERY = """
query OrderSearch($query: String!, $first: Int!) {
  orders(first: $first, query: $query, sortKey: CREATED_AT, reverse: true) {
    edges {
      node {%s}
    }
  }
}
""" % ORDER_FULFILLMENT_FIELDS


# --- Shopify Admin API Client ---
class ShopifyAPI:
    """
    Read-only access to order fulfillments on the Shopify Admin API.
    Never raises on transport problems: every call returns a CarrierResponse.
    """

    def __init__(self, config: CarrierConfig, logger: Optional[logging.Logger] = None):
        if not config.is_configured:
            raise ValueError("Shopify shop domain and access token are required.")

        self.config = config
        self.headers = {
            'X-Shopify-Access-Token': config.access_token,
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }
        self.logger = logger or logging.getLogger(__name__)

    def _request(self, method: str, endpoint: str, **kwargs) -> CarrierResponse:
        url = f"{self.config.base_url}{endpoint}"
        try:
            response = requests.request(method, url, headers=self.headers, timeout=self.config.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Shopify request to {endpoint} failed: {e}")
            return CarrierResponse(status=0, errors=[f"request failed: {e}"])

        if response.status_code == 401:
            self.logger.error("Shopify API authentication failed. Please verify the access token.")

        if not 200 <= response.status_code < 300:
            self.logger.warning(f"Shopify {method} {endpoint} returned HTTP {response.status_code}")
            return CarrierResponse(
                status=response.status_code,
                errors=[f"HTTP {response.status_code}: {(response.text or '')[:200]}"]
            )

        try:
            raw_data = response.json()
        except ValueError:
            self.logger.warning(f"Shopify {method} {endpoint} returned malformed JSON.")
            return CarrierResponse(status=response.status_code, errors=["malformed JSON"])

        sanitized_data = sanitize_api_response(raw_data, self.logger)
        return CarrierResponse(
            status=response.status_code,
            data=sanitized_data,
            errors=self._api_errors(sanitized_data)
        )

    @staticmethod
    def _api_errors(data: Any) -> List[str]:
        """Collects REST 'errors' values and GraphQL error messages."""
        if not isinstance(data, dict) or not data.get('errors'):
            return []
        errors = data['errors']
        if isinstance(errors, list):
            return [str(e.get('message', e)) if isinstance(e, dict) else str(e) for e in errors]
        return [str(errors)]

    def get_order_fulfillments(self, order_id: str) -> CarrierResponse:
        return self._request('GET', f"/orders/{order_id}/fulfillments.json")

    def get_order_with_fulfillments(self, order_id: str) -> CarrierResponse:
        return self._request('GET', f"/orders/{order_id}.json", params={'fields': 'id,name,fulfillments'})

    def graphql(self, query: str, variables: Dict[str, Any]) -> CarrierResponse:
        return self._request('POST', "/graphql.json", json={'query': query, 'variables': variables})

    def graphql_order_by_id(self, order_id: str) -> CarrierResponse:
        return self.graphql(ORDER_BY_ID_QUERY, {'id': f"gid://shopify/Order/{order_id}"})

    def graphql_search_orders(self, term: str, first: int = 10) -> CarrierResponse:
        return self.graphql(ORDER_SEARCH_QUERY, {'query': f"name:{term}", 'first': first})


# --- Identity Client ---
class IdentityClient:
    """Resolves a bearer token to the signed-in user through the site's identity endpoint."""

    def __init__(self, site_url: str, logger: Optional[logging.Logger] = None, timeout: int = 10):
        self.site_url = (site_url or "").rstrip('/')
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def get_user(self, authorization: str) -> Optional[Dict[str, Any]]:
        """Returns the identity user or None when the token is missing, invalid or unverifiable."""
        if not authorization or not authorization.lower().startswith("bearer "):
            return None
        if not self.site_url:
            self.logger.warning("No identity site URL configured; cannot verify bearer token.")
            return None

        try:
            response = requests.get(
                f"{self.site_url}/.netlify/identity/user",
                headers={'Authorization': authorization},
                timeout=self.timeout
            )
            if not response.ok:
                self.logger.info(f"Identity endpoint rejected token (HTTP {response.status_code}).")
                return None
            user = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            self.logger.warning(f"Identity lookup failed: {e}")
            return None

        return user if isinstance(user, dict) else None
