"""
Tracking data normalization for carrier fulfillments.

Carrier payloads describe the same tracking facts under several shapes
(REST snake_case, GraphQL camelCase, a scalar or an array, one tracking_info
object or a list of them). Everything shape-specific lives in this module:
callers only ever see TrackingEntry / FulfillmentEntry values.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from config import LookupPolicy
from utils import normalize_tracking_url

logger = logging.getLogger(__name__)

TOKEN_SPLIT_PATTERN = re.compile(r'[,\s;/|]+')

TRACKING_INFO_KEYS = ('tracking_info', 'trackingInfo')
INFO_URL_KEYS = ('url', 'tracking_url', 'trackingUrl')
NUMBER_KEYS = ('tracking_number', 'trackingNumber')
NUMBERS_KEYS = ('tracking_numbers', 'trackingNumbers')
URL_KEYS = ('tracking_url', 'trackingUrl')
URLS_KEYS = ('tracking_urls', 'trackingUrls')
COMPANY_KEYS = ('tracking_company', 'trackingCompany')
STATUS_KEYS = ('status', 'shipment_status', 'shipmentStatus', 'displayStatus')


@dataclass
class TrackingEntry:
    number: str
    url: str
    company: str


@dataclass
class FulfillmentEntry:
    status: str
    tokens: Set[str]
    tracking_url: str
    fulfillment: Dict[str, Any] = field(default_factory=dict)
    position: int = 0


@dataclass
class TrackingSelection:
    tracking_url: str = ""
    fulfillment_number: str = ""
    rule: str = ""


# --- Token matching ---

def to_token(raw: Any) -> str:
    """'  ab-12 ' -> 'AB-12'. Empty input gives an empty token."""
    if raw is None:
        return ""
    return re.sub(r'\s+', '', str(raw)).upper()


def to_token_set(raw: Any) -> Set[str]:
    """Tokenizes a multi-value tracking field ("A1, b2 / C3") into {'A1', 'B2', 'C3'}."""
    tokens = set()
    for value in _as_list(raw):
        if value is None or isinstance(value, (dict, list)):
            continue
        for piece in TOKEN_SPLIT_PATTERN.split(str(value)):
            token = to_token(piece)
            if token:
                tokens.add(token)
    return tokens


# --- Shape helpers ---

def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _first(source: Dict[str, Any], keys: Iterable[str]) -> Any:
    """First non-blank value among alternative field names."""
    for key in keys:
        value = source.get(key)
        if not _is_blank(value):
            return value
    return None


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _first_filled(values: List[str]) -> str:
    return next((v for v in values if v), "")


def _make_entry(number: Any, url: Any, company: Any, fallback_company: str) -> Optional[TrackingEntry]:
    number_text = _text(number)
    resolved_url = normalize_tracking_url(url)
    if not number_text and not resolved_url:
        return None
    return TrackingEntry(number=number_text, url=resolved_url, company=_text(company) or fallback_company)


# --- Fulfillment extraction ---

def extract_tracking_entries(fulfillment: Any) -> List[TrackingEntry]:
    """
    Flattens one carrier fulfillment object into uniform {number, url, company} entries.

    tracking_info sub-objects are read first; the direct tracking_number(s) /
    tracking_url(s) fields are only used when the sub-objects yield nothing.
    Direct lists of different lengths are paired positionally and the shorter
    one repeats its first filled value.
    """
    if not isinstance(fulfillment, dict):
        return []

    fallback_company = _text(_first(fulfillment, COMPANY_KEYS))
    entries: List[TrackingEntry] = []

    for info in _as_list(_first(fulfillment, TRACKING_INFO_KEYS)):
        if not isinstance(info, dict):
            continue
        entry = _make_entry(info.get('number'), _first(info, INFO_URL_KEYS), info.get('company'), fallback_company)
        if entry:
            entries.append(entry)

    if entries:
        return entries

    numbers = [_text(n) for n in _as_list(_first(fulfillment, NUMBERS_KEYS) or _first(fulfillment, NUMBER_KEYS))]
    urls = [_text(u) for u in _as_list(_first(fulfillment, URLS_KEYS) or _first(fulfillment, URL_KEYS))]

    first_number = _first_filled(numbers)
    first_url = _first_filled(urls)
    for index in range(max(len(numbers), len(urls))):
        number = numbers[index] if index < len(numbers) else first_number
        url = urls[index] if index < len(urls) else first_url
        entry = _make_entry(number, url, None, fallback_company)
        if entry:
            entries.append(entry)

    return entries


def pick_primary_tracking_number(fulfillment: Any) -> str:
    if not isinstance(fulfillment, dict):
        return ""

    for entry in extract_tracking_entries(fulfillment):
        if entry.number:
            return entry.number

    direct = _text(_first(fulfillment, NUMBER_KEYS))
    if direct:
        return direct

    return _first_filled([_text(n) for n in _as_list(_first(fulfillment, NUMBERS_KEYS))])


def fulfillment_status(fulfillment: Any) -> str:
    """Lower-cased status words of a fulfillment, e.g. 'success in_transit'."""
    if not isinstance(fulfillment, dict):
        return ""
    words: List[str] = []
    for key in STATUS_KEYS:
        value = _text(fulfillment.get(key)).lower()
        if value and value not in words:
            words.append(value)
    return " ".join(words)


def build_fulfillment_entries(fulfillments: Optional[List[Any]]) -> List[FulfillmentEntry]:
    """One FulfillmentEntry per fulfillment that has a resolvable tracking URL, in arrival order."""
    result: List[FulfillmentEntry] = []
    for position, fulfillment in enumerate(fulfillments or []):
        if not isinstance(fulfillment, dict):
            continue

        tracking = extract_tracking_entries(fulfillment)
        url = _first_filled([entry.url for entry in tracking])
        if not url:
            logger.debug(f"Skipping fulfillment #{position}: no resolvable tracking URL.")
            continue

        tokens: Set[str] = set()
        for entry in tracking:
            tokens |= to_token_set(entry.number)
        tokens |= to_token_set(_first(fulfillment, NUMBER_KEYS))
        tokens |= to_token_set(_first(fulfillment, NUMBERS_KEYS))

        result.append(FulfillmentEntry(
            status=fulfillment_status(fulfillment),
            tokens=tokens,
            tracking_url=url,
            fulfillment=fulfillment,
            position=position,
        ))
    return result


# --- Selection ---

def is_preferred_status(status: str, policy: Optional[LookupPolicy] = None) -> bool:
    policy = policy or LookupPolicy()
    status = (status or "").lower()
    if not status:
        return False
    if any(word in policy.preferred_statuses for word in status.split()):
        return True
    return any(fragment in status for fragment in policy.preferred_status_fragments)


def select_tracking(
    entries: List[FulfillmentEntry],
    expected_number: Any,
    policy: Optional[LookupPolicy] = None
) -> TrackingSelection:
    """
    Picks the single best tracking URL / number among fulfillment entries.

    First matching rule wins, scanning newest entry first:
      1. token match with the number on file and a preferred status
      2. token match
      3. preferred status
      4. latest entry with a URL
    The returned number is the chosen fulfillment's primary tracking number,
    or the number already on file when that is empty.
    """
    if not entries:
        return TrackingSelection()

    policy = policy or LookupPolicy()
    expected_tokens = to_token_set(expected_number)
    newest_first = list(reversed(entries))

    def token_match(entry: FulfillmentEntry) -> bool:
        return bool(expected_tokens & entry.tokens)

    def preferred(entry: FulfillmentEntry) -> bool:
        return is_preferred_status(entry.status, policy)

    rules = [
        ("token_and_status", lambda e: token_match(e) and preferred(e)),
        ("token", token_match),
        ("status", preferred),
        ("latest", lambda e: bool(e.tracking_url)),
    ]

    for rule, predicate in rules:
        chosen = next((entry for entry in newest_first if predicate(entry)), None)
        if chosen is not None:
            number = pick_primary_tracking_number(chosen.fulfillment) or _text(expected_number)
            return TrackingSelection(tracking_url=chosen.tracking_url, fulfillment_number=number, rule=rule)

    return TrackingSelection()
