import os
from datetime import datetime
from typing import Any, Callable

# Google Cloud specific imports for Cloud Functions
import functions_framework
from flask import Flask, jsonify, make_response, request

from config import load_admin_config
from utils import setup_logging
from error_handler import (
    ErrorContext, MethodNotAllowed, OrderLookupError, UpstreamUnavailable,
    error_handler, health_checker
)
from input_validation import normalize_order_code, normalize_phone
from order_processing import lookup_order
from catalog_admin import (
    ADMIN_HEADERS, CATALOG_HEADERS, AdminAllowList, CatalogStore,
    authenticated_email, authorize_admin, get_or_create_worksheet, open_spreadsheet
)
from api_clients import IdentityClient

logger = setup_logging()

ORDER_CODE_FIELDS = ("orderNumber", "order_number", "orderCode", "order_name")
INVALID_BODY_MESSAGE = "Body JSON inválido"


def json_response(body: Any, status: int = 200, no_store: bool = False) -> Any:
    response = make_response(jsonify(body), status)
    if no_store:
        response.headers['Cache-Control'] = 'no-store'
    return response


def _run(operation: str, handler: Callable[[Any], Any], req: Any, no_store: bool = False) -> Any:
    """Runs a handler, turning OrderLookupError into its JSON error response."""
    try:
        return handler(req)
    except UpstreamUnavailable as e:
        error_handler.handle_error(e, ErrorContext(operation=operation, component="main"))
        return json_response({"error": e.message}, e.status_code, no_store)
    except OrderLookupError as e:
        logger.info(f"{operation} rejected ({e.status_code}): {e.message}")
        return json_response({"error": e.message}, e.status_code, no_store)
    except Exception as e:
        error_handler.handle_error(e, ErrorContext(operation=operation, component="main"))
        return json_response({"error": OrderLookupError.default_message}, 500, no_store)


# --- Handlers ---

def handle_order_lookup(req: Any) -> Any:
    if req.method != "POST":
        raise MethodNotAllowed()

    payload = req.get_json(silent=True)
    if not isinstance(payload, dict):
        return json_response({"error": INVALID_BODY_MESSAGE}, 400, no_store=True)

    order_code = next((payload[key] for key in ORDER_CODE_FIELDS if payload.get(key)), "")
    logger.info(
        f"Order lookup for {normalize_order_code(order_code)} "
        f"(phone ...{normalize_phone(payload.get('phone'))[-4:]})"
    )
    result = lookup_order(payload.get('phone'), order_code, logger=logger)
    return json_response(result, 200, no_store=True)


def handle_catalog_admin(req: Any) -> Any:
    config = load_admin_config()
    user = IdentityClient(config.identity_site_url, logger=logger).get_user(req.headers.get('Authorization', ''))
    authenticated_email(user)  # anonymous callers never reach the spreadsheet

    sheet = open_spreadsheet(config, logger)
    allow_list = AdminAllowList(get_or_create_worksheet(sheet, config.admin_worksheet, ADMIN_HEADERS, logger), logger)
    email = authorize_admin(user, allow_list)
    store = CatalogStore(get_or_create_worksheet(sheet, config.catalog_worksheet, CATALOG_HEADERS, logger), logger)

    if req.method == "GET":
        return json_response({"allowed": True, "email": email, "records": store.list_records()})

    payload = req.get_json(silent=True)
    if not isinstance(payload, dict):
        return json_response({"error": INVALID_BODY_MESSAGE}, 400)

    if req.method == "POST":
        record_id = store.create_record(payload)
        return json_response({"ok": True, "id": record_id})
    if req.method == "PATCH":
        store.update_record(payload)
        return json_response({"ok": True})
    if req.method == "DELETE":
        store.delete_record(payload)
        return json_response({"ok": True})

    raise MethodNotAllowed()


def handle_catalog_records(req: Any) -> Any:
    if req.method != "GET":
        raise MethodNotAllowed()
    store = CatalogStore.from_config(load_admin_config(), logger)
    return json_response({"records": store.list_records()})


# --- Cloud Function Entry Points ---

@functions_framework.http # type: ignore
def order_lookup(request: Any) -> Any: # type: ignore
    """Customer-facing order status lookup."""
    return _run("order_lookup", handle_order_lookup, request, no_store=True)


@functions_framework.http # type: ignore
def catalog_admin(request: Any) -> Any: # type: ignore
    """Allow-listed catalog CRUD."""
    return _run("catalog_admin", handle_catalog_admin, request)


@functions_framework.http # type: ignore
def catalog_records(request: Any) -> Any: # type: ignore
    """Public catalog listing."""
    return _run("catalog_records", handle_catalog_records, request)


# =============================================================================
# Flask Application for Cloud Run
# =============================================================================

app = Flask(__name__)


@app.route('/api/order-lookup', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
def order_lookup_endpoint():
    return _run("order_lookup", handle_order_lookup, request, no_store=True)


@app.route('/api/admin', methods=['GET', 'POST', 'PATCH', 'DELETE', 'PUT'])
def catalog_admin_endpoint():
    return _run("catalog_admin", handle_catalog_admin, request)


@app.route('/api/catalog', methods=['GET', 'POST'])
def catalog_records_endpoint():
    return _run("catalog_records", handle_catalog_records, request)


@app.route('/health', methods=['GET'])
def health_check():
    """
    Health check endpoint for Cloud Run and load balancers.
    Reports whether each collaborator is configured.
    """
    health_status = health_checker.run_health_checks()
    health_status["version"] = "1.0.0"
    status_code = 200 if health_status["overall_status"] == "healthy" else 503
    return jsonify(health_status), status_code


@app.route('/ready', methods=['GET'])
def readiness_check():
    return jsonify({"status": "ready", "timestamp": datetime.now().isoformat()}), 200


@app.route('/live', methods=['GET'])
def liveness_check():
    return jsonify({"status": "alive", "timestamp": datetime.now().isoformat()}), 200


@app.route('/', methods=['GET'])
def index():
    """Root endpoint with API information."""
    return jsonify({
        "service": "Order Lookup",
        "version": "1.0.0",
        "description": "Order status lookup with carrier tracking resolution",
        "endpoints": {
            "/api/order-lookup": "Look up an order by phone and order number (POST)",
            "/api/admin": "Catalog administration (GET, POST, PATCH, DELETE)",
            "/api/catalog": "Public catalog listing (GET)",
            "/health": "Health check endpoint",
            "/ready": "Readiness probe",
            "/live": "Liveness probe"
        }
    }), 200


@app.errorhandler(404)
def not_found(error):
    return jsonify({"error": "Endpoint not found"}), 404


@app.errorhandler(500)
def internal_error(error):
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    logger.info("Starting Order Lookup service...")

    # Get port from environment variable (Cloud Run sets this)
    port = int(os.environ.get("PORT", 8080))
    logger.info(f"Starting Flask server on port {port}")

    app.run(
        host="0.0.0.0",
        port=port,
        debug=os.environ.get("FLASK_DEBUG", "false").lower() == "true"
    )
