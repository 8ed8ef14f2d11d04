import os
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv
load_dotenv()

from error_handler import ConfigurationMissing

# --- Order Store (PostgreSQL) ---
REQUIRED_STORE_ENV = ["PGHOST", "PGDATABASE", "PGUSER", "PGPASSWORD"]

# --- Carrier (Shopify Admin API) ---
# Checked in order; the first non-empty value wins.
SHOP_DOMAIN_ENV = ["SHOPIFY_STORE_DOMAIN", "SHOPIFY_SHOP_DOMAIN", "SHOPIFY_SHOP", "SHOPIFY_STORE_URL"]
SHOP_TOKEN_ENV = ["SHOPIFY_ADMIN_ACCESS_TOKEN", "SHOPIFY_ACCESS_TOKEN", "SHOPIFY_ADMIN_API_TOKEN"]
DEFAULT_SHOPIFY_API_VERSION = "2024-10"

# --- Catalog Admin (Google Sheets) ---
SERVICE_ACCOUNT_FILE = os.environ.get("SERVICE_ACCOUNT_FILE", "service-account.json")
SHEETS_SCOPES = [
    'https://spreadsheets.google.com/feeds',
    'https://www.googleapis.com/auth/drive'
]
IDENTITY_SITE_ENV = ["IDENTITY_SITE_URL", "URL", "DEPLOY_PRIME_URL"]

# --- Logging Configuration ---
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
ENABLE_DEBUG_LOGGING = os.environ.get("ENABLE_DEBUG_LOGGING", "false").lower() == "true"

# --- Response Configuration ---
INCLUDE_TRACKING_DEBUG = os.environ.get("INCLUDE_TRACKING_DEBUG", "true").lower() == "true"


def _first_env(names: List[str]) -> Tuple[str, str]:
    """Returns (name, value) for the first non-empty variable in names."""
    for name in names:
        value = (os.environ.get(name) or "").strip()
        if value:
            return name, value
    return "", ""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return list(default)
    return [item.strip().lower() for item in re.split(r'[,;\s]+', raw) if item.strip()]


@dataclass
class StoreConfig:
    host: str
    database: str
    user: str
    password: str
    port: int = 5432
    sslmode: str = "require"
    pool_max: int = 3
    connect_timeout: int = 10


def load_store_config() -> StoreConfig:
    """
    Resolves the order store connection settings from the environment.
    Raises ConfigurationMissing naming every required variable that is unset.
    """
    missing = [name for name in REQUIRED_STORE_ENV if not os.environ.get(name)]
    if missing:
        raise ConfigurationMissing(missing)

    sslmode = (os.environ.get("PGSSLMODE") or "").strip().lower()
    return StoreConfig(
        host=os.environ["PGHOST"],
        database=os.environ["PGDATABASE"],
        user=os.environ["PGUSER"],
        password=os.environ["PGPASSWORD"],
        port=int(os.environ.get("PGPORT") or 5432),
        sslmode="disable" if sslmode == "disable" else "require",
        pool_max=int(os.environ.get("PG_POOL_MAX") or 3),
    )


def normalize_shop_domain(value: str) -> str:
    """'https://my-shop.myshopify.com/' -> 'my-shop.myshopify.com'"""
    domain = (value or "").strip()
    domain = re.sub(r'^https?://', '', domain, flags=re.IGNORECASE)
    return domain.split('/')[0].strip().lower()


@dataclass
class CarrierConfig:
    shop_domain: str = ""
    access_token: str = ""
    api_version: str = DEFAULT_SHOPIFY_API_VERSION
    timeout: int = 10
    domain_source: str = ""
    token_source: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.shop_domain and self.access_token)

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}"


def load_carrier_config() -> CarrierConfig:
    domain_source, domain = _first_env(SHOP_DOMAIN_ENV)
    token_source, token = _first_env(SHOP_TOKEN_ENV)
    return CarrierConfig(
        shop_domain=normalize_shop_domain(domain),
        access_token=token,
        api_version=(os.environ.get("SHOPIFY_API_VERSION") or DEFAULT_SHOPIFY_API_VERSION).strip(),
        timeout=int(os.environ.get("CARRIER_REQUEST_TIMEOUT") or 10),
        domain_source=domain_source,
        token_source=token_source,
    )


@dataclass
class AdminConfig:
    spreadsheet_id: str
    service_account_file: Optional[str] = None
    catalog_worksheet: str = "Catalog"
    admin_worksheet: str = "Admins"
    identity_site_url: str = ""


def load_admin_config() -> AdminConfig:
    _, spreadsheet_id = _first_env(["CATALOG_SPREADSHEET_ID", "SPREADSHEET_ID"])
    if not spreadsheet_id:
        raise ConfigurationMissing(["CATALOG_SPREADSHEET_ID"])
    _, site_url = _first_env(IDENTITY_SITE_ENV)
    return AdminConfig(
        spreadsheet_id=spreadsheet_id,
        service_account_file=os.environ.get("SERVICE_ACCOUNT_FILE", SERVICE_ACCOUNT_FILE),
        catalog_worksheet=os.environ.get("CATALOG_WORKSHEET", "Catalog"),
        admin_worksheet=os.environ.get("ADMIN_WORKSHEET", "Admins"),
        identity_site_url=site_url.rstrip('/'),
    )


@dataclass
class LookupPolicy:
    """Business rules that decide when and how carrier tracking is resolved."""
    include_partially_fulfilled: bool = True
    carrier_tag: str = "foraneo"
    local_tag: str = "local"
    preferred_statuses: List[str] = field(default_factory=lambda: ["success", "open", "closed"])
    preferred_status_fragments: List[str] = field(
        default_factory=lambda: ["in_transit", "out_for_delivery", "delivered"]
    )


def load_lookup_policy() -> LookupPolicy:
    defaults = LookupPolicy()
    return LookupPolicy(
        include_partially_fulfilled=_env_bool("CARRIER_LOOKUP_INCLUDE_PARTIAL", defaults.include_partially_fulfilled),
        carrier_tag=(os.environ.get("CARRIER_TAG") or defaults.carrier_tag).strip().lower(),
        local_tag=(os.environ.get("LOCAL_TAG") or defaults.local_tag).strip().lower(),
        preferred_statuses=_env_list("TRACKING_PREFERRED_STATUSES", defaults.preferred_statuses),
        preferred_status_fragments=_env_list("TRACKING_PREFERRED_STATUS_FRAGMENTS", defaults.preferred_status_fragments),
    )
