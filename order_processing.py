import re
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from config import (
    CarrierConfig, LookupPolicy, StoreConfig, INCLUDE_TRACKING_DEBUG,
    load_carrier_config, load_lookup_policy, load_store_config
)
from api_clients import ShopifyAPI, CarrierResponse
from error_handler import CarrierUnavailable
from input_validation import normalize_phone, normalize_order_code, validate_request
from order_store import OrderStore, get_order_store
from tracking import build_fulfillment_entries, select_tracking
from utils import has_tag, normalize_tracking_url


STRATEGY_FULFILLMENTS = "fulfillments_endpoint"
STRATEGY_ORDER = "order_endpoint"
STRATEGY_GRAPHQL_ORDER = "graphql_order"
STRATEGY_GRAPHQL_SEARCH = "graphql_search"

REASON_MISSING_CREDENTIALS = "missing carrier credentials"
REASON_MISSING_ORDER_ID = "missing carrier order id"
REASON_ORDER_NOT_FOUND = "order not found"
REASON_NO_FULFILLMENTS = "order has no fulfillments"
REASON_NO_TRACKING_URL = "no fulfillment with tracking url"


@dataclass
class FetchAttempt:
    strategy: str
    status: int = 0
    errors: List[str] = field(default_factory=list)
    order_found: bool = False
    fulfillment_count: int = 0
    transport_ok: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CarrierFetchResult:
    fulfillments: List[Dict[str, Any]] = field(default_factory=list)
    strategy: str = ""
    attempts: List[FetchAttempt] = field(default_factory=list)
    reason: str = ""


def derive_carrier_order_id(raw: Any) -> str:
    """
    '5123456789' -> '5123456789'; 'gid://shopify/Order/5123456789' -> '5123456789'.
    Uses the last run of digits when the identifier is not purely numeric.
    """
    if raw is None or isinstance(raw, bool):
        return ""
    text = str(raw).strip()
    if re.fullmatch(r'[0-9]+', text):
        return text
    runs = re.findall(r'[0-9]+', text)
    return runs[-1] if runs else ""


def _clean_order_name(value: Any) -> str:
    return str(value or "").strip().upper().lstrip('#').strip()


def _as_fulfillment_list(value: Any) -> List[Dict[str, Any]]:
    """Accepts a plain list or a GraphQL connection ({edges: [{node}]} / {nodes: [...]})."""
    if isinstance(value, dict):
        if isinstance(value.get('nodes'), list):
            value = value['nodes']
        elif isinstance(value.get('edges'), list):
            value = [edge.get('node') for edge in value['edges'] if isinstance(edge, dict)]
        else:
            value = [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _body(response: CarrierResponse) -> Dict[str, Any]:
    return response.data if isinstance(response.data, dict) else {}


def _graphql_field(response: CarrierResponse, name: str) -> Any:
    """data.<name> of a GraphQL payload, or None when any level is not an object."""
    data = _body(response).get('data')
    return data.get(name) if isinstance(data, dict) else None


def choose_search_candidate(
    candidates: List[Dict[str, Any]],
    carrier_order_id: str,
    term: str
) -> Optional[Dict[str, Any]]:
    """exact numeric id -> exact name -> name contains term -> first candidate."""
    if not candidates:
        return None

    if carrier_order_id:
        for candidate in candidates:
            if derive_carrier_order_id(candidate.get('id')) == carrier_order_id:
                return candidate

    wanted = _clean_order_name(term)
    if wanted:
        for candidate in candidates:
            if _clean_order_name(candidate.get('name')) == wanted:
                return candidate
        for candidate in candidates:
            if wanted in _clean_order_name(candidate.get('name')):
                return candidate

    return candidates[0]


# --- Fetch strategies ---
# Each returns (response, order_found, fulfillments).

StrategyResult = Tuple[CarrierResponse, bool, List[Dict[str, Any]]]


def _fetch_from_fulfillments_endpoint(client: ShopifyAPI, carrier_order_id: str, order_code: str) -> StrategyResult:
    response = client.get_order_fulfillments(carrier_order_id)
    body = _body(response)
    found = response.transport_ok and 'fulfillments' in body
    return response, found, _as_fulfillment_list(body.get('fulfillments'))


def _fetch_from_order_endpoint(client: ShopifyAPI, carrier_order_id: str, order_code: str) -> StrategyResult:
    response = client.get_order_with_fulfillments(carrier_order_id)
    order = _body(response).get('order')
    if not isinstance(order, dict):
        return response, False, []
    return response, True, _as_fulfillment_list(order.get('fulfillments'))


def _fetch_from_graphql_order(client: ShopifyAPI, carrier_order_id: str, order_code: str) -> StrategyResult:
    response = client.graphql_order_by_id(carrier_order_id)
    order = _graphql_field(response, 'order')
    if not isinstance(order, dict):
        return response, False, []
    return response, True, _as_fulfillment_list(order.get('fulfillments'))


def _fetch_from_graphql_search(client: ShopifyAPI, carrier_order_id: str, order_code: str) -> StrategyResult:
    response = client.graphql_search_orders(order_code)
    orders = _graphql_field(response, 'orders')
    edges = orders.get('edges') if isinstance(orders, dict) else None
    if not isinstance(edges, list):
        edges = []
    candidates = [edge.get('node') for edge in edges if isinstance(edge, dict) and isinstance(edge.get('node'), dict)]
    order = choose_search_candidate(candidates, carrier_order_id, order_code)
    if order is None:
        return response, False, []
    return response, True, _as_fulfillment_list(order.get('fulfillments'))


# (name, strategy, needs numeric carrier order id)
FETCH_STRATEGIES: List[Tuple[str, Callable[[ShopifyAPI, str, str], StrategyResult], bool]] = [
    (STRATEGY_FULFILLMENTS, _fetch_from_fulfillments_endpoint, True),
    (STRATEGY_ORDER, _fetch_from_order_endpoint, True),
    (STRATEGY_GRAPHQL_ORDER, _fetch_from_graphql_order, True),
    (STRATEGY_GRAPHQL_SEARCH, _fetch_from_graphql_search, False),
]


def fetch_carrier_fulfillments(
    client: ShopifyAPI,
    carrier_order_id: str,
    order_code: str = "",
    logger: Optional[logging.Logger] = None
) -> CarrierFetchResult:
    """
    Tries each fetch strategy in order and stops at the first one that returns fulfillments.

    Returns an empty result with a reason code when the carrier answered but had
    nothing to offer. Raises CarrierUnavailable when every attempted strategy
    failed at transport level.
    """
    log = logger or logging.getLogger(__name__)
    attempts: List[FetchAttempt] = []

    for name, strategy, needs_order_id in FETCH_STRATEGIES:
        if needs_order_id and not carrier_order_id:
            continue
        if not needs_order_id and not order_code:
            continue

        try:
            response, order_found, fulfillments = strategy(client, carrier_order_id, order_code)
        except requests.exceptions.RequestException as e:
            log.warning(f"Carrier strategy {name} raised a transport error: {e}")
            attempts.append(FetchAttempt(strategy=name, errors=[f"request failed: {e}"]))
            continue
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # unexpected payload shape; the next strategy may still answer
            log.warning(f"Carrier strategy {name} could not read the response: {e}")
            attempts.append(FetchAttempt(strategy=name, errors=[f"malformed response: {e}"]))
            continue

        attempt = FetchAttempt(
            strategy=name,
            status=response.status,
            errors=list(response.errors),
            order_found=order_found,
            fulfillment_count=len(fulfillments),
            transport_ok=response.transport_ok,
        )
        attempts.append(attempt)
        log.info(
            f"Carrier strategy {name}: HTTP {response.status}, order_found={order_found}, "
            f"fulfillments={len(fulfillments)}"
        )
        if response.errors:
            log.warning(f"Carrier strategy {name} reported errors: {response.errors}")

        if fulfillments:
            return CarrierFetchResult(fulfillments=fulfillments, strategy=name, attempts=attempts)

    if not attempts:
        return CarrierFetchResult(reason=REASON_MISSING_ORDER_ID)

    if not any(attempt.transport_ok for attempt in attempts):
        raise CarrierUnavailable(attempts)

    reason = REASON_NO_FULFILLMENTS if any(a.order_found for a in attempts) else REASON_ORDER_NOT_FOUND
    return CarrierFetchResult(attempts=attempts, reason=reason)


# --- Order resolution ---

def is_completed_fulfillment(status: Any, policy: LookupPolicy) -> bool:
    value = str(status or "").strip().lower()
    if value == "fulfilled":
        return True
    return policy.include_partially_fulfilled and "partially" in value


def needs_carrier_lookup(order: Dict[str, Any], policy: LookupPolicy) -> bool:
    return has_tag(order.get('tags'), policy.carrier_tag) and is_completed_fulfillment(order.get('fulfillment_status'), policy)


def classify_order_status(order: Dict[str, Any], policy: Optional[LookupPolicy] = None) -> str:
    """The status screen the lookup form shows for an order."""
    policy = policy or LookupPolicy()
    if str(order.get('financial_status') or '').strip().lower() != 'paid':
        return "payment_pending"

    fulfillment = str(order.get('fulfillment_status') or '').strip().lower()
    shipped = fulfillment == "fulfilled" or "partially" in fulfillment

    if has_tag(order.get('tags'), policy.local_tag):
        return "local_fulfilled" if shipped else "local_preparing"
    if has_tag(order.get('tags'), policy.carrier_tag):
        return "foraneo_fulfilled" if shipped else "foraneo_preparing"
    return "unknown"


def augment_with_carrier_tracking(
    order: Dict[str, Any],
    order_code: str,
    client: Optional[ShopifyAPI] = None,
    carrier_config: Optional[CarrierConfig] = None,
    policy: Optional[LookupPolicy] = None,
    logger: Optional[logging.Logger] = None
) -> Dict[str, Any]:
    """
    Reconciles the order's tracking fields against the carrier and updates them in place.
    Never raises: every failure keeps the stored tracking fields and is described in
    the returned diagnostic record.
    """
    log = logger or logging.getLogger(__name__)
    policy = policy or LookupPolicy()
    carrier_order_id = derive_carrier_order_id(order.get('carrier_order_id'))
    debug: Dict[str, Any] = {
        'attempted': False,
        'carrier_order_id': carrier_order_id,
        'fulfillments_found': 0,
        'strategy': "",
        'resolved': False,
        'reason': "",
        'attempts': [],
        'checked_at': datetime.now(timezone.utc).isoformat(),
    }

    if client is None:
        try:
            config = carrier_config or load_carrier_config()
        except ValueError as e:
            log.error(f"Invalid carrier configuration; skipping tracking lookup for {order_code}: {e}")
            debug['reason'] = f"invalid carrier configuration: {e}"
            return debug
        if not config.is_configured:
            log.warning(f"Carrier credentials missing; skipping tracking lookup for {order_code}.")
            debug['reason'] = REASON_MISSING_CREDENTIALS
            return debug
        client = ShopifyAPI(config, logger=log)

    search_code = normalize_order_code(order.get('order_name')) or order_code
    debug['attempted'] = True

    try:
        result = fetch_carrier_fulfillments(client, carrier_order_id, search_code, log)
    except CarrierUnavailable as e:
        log.warning(f"Carrier unavailable for {order_code}: {e}")
        debug['attempts'] = [attempt.to_dict() for attempt in e.attempts]
        debug['reason'] = str(e)
        return debug
    except Exception as e:
        log.error(f"Unexpected error during carrier lookup for {order_code}: {e}", exc_info=True)
        debug['reason'] = f"carrier lookup failed: {e}"
        return debug

    debug['attempts'] = [attempt.to_dict() for attempt in result.attempts]
    debug['fulfillments_found'] = len(result.fulfillments)
    debug['strategy'] = result.strategy

    if not result.fulfillments:
        debug['reason'] = result.reason
        log.info(f"No carrier fulfillments for {order_code}: {result.reason}")
        return debug

    entries = build_fulfillment_entries(result.fulfillments)
    if not entries:
        debug['reason'] = REASON_NO_TRACKING_URL
        return debug

    selection = select_tracking(entries, order.get('fulfillment_number'), policy)
    order['tracking_url'] = selection.tracking_url
    if selection.fulfillment_number:
        order['fulfillment_number'] = selection.fulfillment_number
    debug['resolved'] = True
    debug['selection_rule'] = selection.rule
    log.info(f"Resolved carrier tracking for {order_code} via {result.strategy} ({selection.rule}).")
    return debug


def lookup_order(
    phone: Any,
    order_code: Any,
    store: Optional[OrderStore] = None,
    carrier_client: Optional[ShopifyAPI] = None,
    store_config: Optional[StoreConfig] = None,
    carrier_config: Optional[CarrierConfig] = None,
    policy: Optional[LookupPolicy] = None,
    include_debug: Optional[bool] = None,
    logger: Optional[logging.Logger] = None
) -> Dict[str, Any]:
    """
    Resolves an order by phone and order code, enriching foraneo shipments with carrier tracking.

    Raises:
        InvalidInput: phone or order code rejected (no I/O performed)
        ConfigurationMissing: order store credentials absent (no I/O performed)
        UpstreamUnavailable: the order store query failed
    """
    log = logger or logging.getLogger(__name__)
    phone_digits = normalize_phone(phone)
    code = normalize_order_code(order_code)
    validate_request(phone_digits, code)

    if store is None:
        store = get_order_store(store_config or load_store_config(), log)
    policy = policy or load_lookup_policy()
    if include_debug is None:
        include_debug = INCLUDE_TRACKING_DEBUG

    row = store.find_order(code, phone_digits)
    if not row:
        return {'found': False, 'order': None}

    order = dict(row)
    order['tracking_url'] = normalize_tracking_url(order.get('tracking_url'))

    if str(order.get('financial_status') or '').strip().lower() != 'paid':
        log.info(f"Order {code} found with payment pending.")
        return {'found': True, 'order': order, 'status': classify_order_status(order, policy)}

    if needs_carrier_lookup(order, policy):
        tracking_lookup = augment_with_carrier_tracking(
            order, code, client=carrier_client, carrier_config=carrier_config, policy=policy, logger=log
        )
        if include_debug:
            order['tracking_lookup'] = tracking_lookup

    return {'found': True, 'order': order, 'status': classify_order_status(order, policy)}
