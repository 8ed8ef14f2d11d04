"""
Read-only access to the orders table in PostgreSQL.

A single process-wide connection pool is shared by every request; the number
of in-flight queries is capped at the pool size and extra callers wait for a
free connection instead of failing.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Optional

import psycopg2
import psycopg2.extras
import psycopg2.pool

from config import StoreConfig
from error_handler import UpstreamUnavailable
from utils import to_json_safe


LOOKUP_QUERY = """
  SELECT
    name AS order_name,
    shipping_phone AS phone,
    tags,
    financial_status,
    fulfillment_status,
    tracking_url,
    fulfillment_number,
    shopify_order_id AS carrier_order_id,
    created_at,
    paid_at,
    onfleet_created_at,
    onfleet_delivered_at,
    onfleet_failed_at,
    lalamove_delivered_at,
    shipping_type,
    full_address,
    notes,
    jt_label_url,
    jt_url
  FROM public.orders_full
  WHERE upper(trim(COALESCE(name, ''))) = %(order_code)s
    AND regexp_replace(COALESCE(shipping_phone, ''), '\\D', '', 'g') ILIKE '%%' || %(phone)s || '%%'
  ORDER BY created_at DESC NULLS LAST
  LIMIT 1
"""


class OrderStore:
    """Pooled, read-only order lookups."""

    def __init__(self, config: StoreConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None
        self._pool_lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(config.pool_max)

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                self.logger.info(
                    f"Opening order store pool to {self.config.host}:{self.config.port}/{self.config.database} "
                    f"(max {self.config.pool_max} connections)"
                )
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=self.config.pool_max,
                    host=self.config.host,
                    port=self.config.port,
                    dbname=self.config.database,
                    user=self.config.user,
                    password=self.config.password,
                    sslmode=self.config.sslmode,
                    connect_timeout=self.config.connect_timeout,
                )
            return self._pool

    @contextmanager
    def connection(self):
        """Borrows a pooled connection; blocks while all connections are in use."""
        with self._slots:
            pool = self._get_pool()
            conn = pool.getconn()
            try:
                yield conn
            finally:
                try:
                    conn.rollback()
                except psycopg2.Error:
                    self.logger.warning("Rollback failed; discarding order store connection.")
                    pool.putconn(conn, close=True)
                else:
                    pool.putconn(conn)

    def find_order(self, order_code: str, phone_digits: str) -> Optional[Dict[str, Any]]:
        """
        Most recent order whose name equals order_code and whose shipping phone contains phone_digits.
        Raises UpstreamUnavailable on any connection or query failure.
        """
        try:
            with self.connection() as conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                    cursor.execute(LOOKUP_QUERY, {'order_code': order_code, 'phone': phone_digits})
                    row = cursor.fetchone()
        except psycopg2.Error as e:
            self.logger.error(f"Order store query failed for {order_code}: {e}")
            raise UpstreamUnavailable() from e

        if not row:
            self.logger.info(f"No order found for {order_code} with phone suffix ...{phone_digits[-4:]}")
            return None
        return to_json_safe(dict(row))

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


_default_store: Optional[OrderStore] = None
_default_store_lock = threading.Lock()


def get_order_store(config: StoreConfig, logger: Optional[logging.Logger] = None) -> OrderStore:
    """Process-wide store, created on first use and reused across requests."""
    global _default_store
    with _default_store_lock:
        if _default_store is None or _default_store.config != config:
            if _default_store is not None:
                _default_store.close()
            _default_store = OrderStore(config, logger)
        return _default_store
