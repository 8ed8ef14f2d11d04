import pytest

from config import (
    load_admin_config, load_carrier_config, load_lookup_policy, load_store_config,
    normalize_shop_domain
)
from error_handler import ConfigurationMissing


def test_store_config_reports_every_missing_variable(clean_env):
    clean_env.setenv("PGHOST", "db.example.com")
    with pytest.raises(ConfigurationMissing) as exc_info:
        load_store_config()
    assert exc_info.value.missing == ["PGDATABASE", "PGUSER", "PGPASSWORD"]
    assert exc_info.value.message == "Faltan variables de entorno: PGDATABASE, PGUSER, PGPASSWORD"


def test_store_config_defaults(clean_env):
    for name, value in [("PGHOST", "db"), ("PGDATABASE", "shop"), ("PGUSER", "ro"), ("PGPASSWORD", "pw")]:
        clean_env.setenv(name, value)
    config = load_store_config()
    assert config.port == 5432
    assert config.sslmode == "require"
    assert config.pool_max == 3

    clean_env.setenv("PGSSLMODE", "DISABLE")
    clean_env.setenv("PGPORT", "6543")
    config = load_store_config()
    assert config.sslmode == "disable"
    assert config.port == 6543


@pytest.mark.parametrize("raw, expected", [
    ("https://My-Shop.myshopify.com/", "my-shop.myshopify.com"),
    ("my-shop.myshopify.com/admin", "my-shop.myshopify.com"),
    ("", ""),
])
def test_normalize_shop_domain(raw, expected):
    assert normalize_shop_domain(raw) == expected


def test_carrier_config_first_non_empty_alias_wins(clean_env):
    clean_env.setenv("SHOPIFY_STORE_DOMAIN", "  ")
    clean_env.setenv("SHOPIFY_SHOP", "https://demo.myshopify.com")
    clean_env.setenv("SHOPIFY_ACCESS_TOKEN", "shpat_x")
    config = load_carrier_config()
    assert config.is_configured
    assert config.domain_source == "SHOPIFY_SHOP"
    assert config.token_source == "SHOPIFY_ACCESS_TOKEN"
    assert config.base_url == "https://demo.myshopify.com/admin/api/2024-10"


def test_carrier_config_unconfigured(clean_env):
    assert not load_carrier_config().is_configured


def test_admin_config(clean_env):
    with pytest.raises(ConfigurationMissing):
        load_admin_config()
    clean_env.setenv("CATALOG_SPREADSHEET_ID", "sheet123")
    clean_env.setenv("URL", "https://site.example.com/")
    config = load_admin_config()
    assert config.spreadsheet_id == "sheet123"
    assert config.identity_site_url == "https://site.example.com"
    assert config.catalog_worksheet == "Catalog"


def test_lookup_policy_from_env(clean_env):
    clean_env.setenv("CARRIER_LOOKUP_INCLUDE_PARTIAL", "no")
    clean_env.setenv("TRACKING_PREFERRED_STATUSES", "Success; delivered")
    policy = load_lookup_policy()
    assert policy.include_partially_fulfilled is False
    assert policy.preferred_statuses == ["success", "delivered"]
    assert policy.carrier_tag == "foraneo"
