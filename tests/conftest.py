import pytest

from config import LookupPolicy, REQUIRED_STORE_ENV, SHOP_DOMAIN_ENV, SHOP_TOKEN_ENV, IDENTITY_SITE_ENV


@pytest.fixture
def clean_env(monkeypatch):
    """Removes every variable the service reads so each test starts unconfigured."""
    names = REQUIRED_STORE_ENV + SHOP_DOMAIN_ENV + SHOP_TOKEN_ENV + IDENTITY_SITE_ENV + [
        "PGPORT", "PGSSLMODE", "PG_POOL_MAX", "SHOPIFY_API_VERSION", "CARRIER_REQUEST_TIMEOUT",
        "CATALOG_SPREADSHEET_ID", "SPREADSHEET_ID", "CATALOG_WORKSHEET", "ADMIN_WORKSHEET",
        "CARRIER_LOOKUP_INCLUDE_PARTIAL", "CARRIER_TAG", "LOCAL_TAG",
        "TRACKING_PREFERRED_STATUSES", "TRACKING_PREFERRED_STATUS_FRAGMENTS",
    ]
    for name in names:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def policy():
    return LookupPolicy()


@pytest.fixture
def paid_foraneo_order():
    return {
        'order_name': "ST-1234",
        'phone': "5512345678",
        'tags': "foraneo, vip",
        'financial_status': "paid",
        'fulfillment_status': "fulfilled",
        'tracking_url': "old.example.com/track/1",
        'fulfillment_number': "OLD1",
        'carrier_order_id': "5123456789",
    }
