"""
Error taxonomy and error handling for the order lookup service.
Provides caller-facing exceptions, contextual error logging, and health checks.
"""

import logging
import traceback
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime
import json


@dataclass
class ErrorContext:
    """Context information for error handling."""
    operation: str
    component: str
    order_code: Optional[str] = None
    phone_suffix: Optional[str] = None
    timestamp: str = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now().isoformat()


class OrderLookupError(Exception):
    """Base class for errors that terminate a request with a caller-visible message."""
    status_code = 500
    default_message = "No se pudo consultar el pedido."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(OrderLookupError):
    status_code = 400
    default_message = "Datos inválidos."


class InvalidPhone(InvalidInput):
    default_message = "El teléfono debe tener exactamente 10 dígitos."


class InvalidOrderCode(InvalidInput):
    default_message = "El número de pedido debe tener formato ST-XXX."


class ConfigurationMissing(OrderLookupError):
    """Required credentials are absent. Raised before any I/O."""
    status_code = 500

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Faltan variables de entorno: {', '.join(self.missing)}")


class UpstreamUnavailable(OrderLookupError):
    status_code = 500


class Unauthorized(OrderLookupError):
    status_code = 401
    default_message = "No autorizado"


class Forbidden(OrderLookupError):
    status_code = 403
    default_message = "No autorizado"


class MethodNotAllowed(OrderLookupError):
    status_code = 405
    default_message = "Método no permitido"


class RecordNotFound(OrderLookupError):
    status_code = 404
    default_message = "Registro no encontrado"


class CarrierUnavailable(Exception):
    """Every carrier strategy failed at transport level. Never reaches the caller."""

    def __init__(self, attempts: List[Any]):
        self.attempts = list(attempts)
        summary = ", ".join(
            f"{getattr(a, 'strategy', '?')}={getattr(a, 'status', 0) or 'ERR'}" for a in self.attempts
        )
        super().__init__(f"carrier unavailable ({summary})" if summary else "carrier unavailable")


class ErrorHandler:
    """Logs request failures with their context and counts them per operation."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.error_counts: Dict[str, Dict[str, int]] = {}
        self.last_errors: Dict[str, Dict[str, Any]] = {}

    def handle_error(self, error: Exception, context: ErrorContext) -> None:
        """Records the error. The caller decides what to return."""
        record = {
            'operation': context.operation,
            'component': context.component,
            'error_type': type(error).__name__,
            'error_message': str(error),
            'status_code': getattr(error, 'status_code', 500),
            'order_code': context.order_code,
            'phone_suffix': context.phone_suffix,
            'timestamp': context.timestamp,
        }
        if not isinstance(error, OrderLookupError):
            record['traceback'] = traceback.format_exc()

        self.logger.error(f"{context.component}.{context.operation} failed: {json.dumps(record, ensure_ascii=False)}")

        per_type = self.error_counts.setdefault(context.operation, {})
        per_type[record['error_type']] = per_type.get(record['error_type'], 0) + 1
        self.last_errors[context.operation] = record

    def get_error_stats(self) -> Dict[str, Any]:
        return {'error_counts': self.error_counts, 'last_errors': self.last_errors}

    def reset_error_stats(self):
        self.error_counts.clear()
        self.last_errors.clear()


# Global error handler instance
error_handler = ErrorHandler()


class HealthChecker:
    """Runs named configuration checks for the /health endpoint."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.checks: Dict[str, Callable[[], bool]] = {}

    def register_health_check(self, name: str, check_func: Callable[[], bool]):
        self.checks[name] = check_func

    def run_health_checks(self) -> Dict[str, Any]:
        """
        overall_status is 'healthy' when every check passes, 'degraded' when a
        check reports False and 'unhealthy' when a check raises.
        """
        checks: Dict[str, Any] = {}
        failed = errored = False
        for name, check_func in self.checks.items():
            try:
                ok = bool(check_func())
            except Exception as e:
                self.logger.warning(f"Health check {name} raised: {e}")
                checks[name] = {'status': 'error', 'error': str(e)}
                errored = True
                continue
            checks[name] = {'status': 'healthy' if ok else 'unhealthy'}
            failed = failed or not ok

        overall = 'unhealthy' if errored else 'degraded' if failed else 'healthy'
        return {
            'timestamp': datetime.now().isoformat(),
            'overall_status': overall,
            'checks': checks,
            'errors': error_handler.get_error_stats()['error_counts'],
        }


# Global health checker instance
health_checker = HealthChecker()


def check_store_config_health() -> bool:
    """The order store has every required connection variable."""
    from config import load_store_config
    try:
        load_store_config()
        return True
    except ConfigurationMissing:
        return False


def check_carrier_config_health() -> bool:
    from config import load_carrier_config
    return load_carrier_config().is_configured


def check_catalog_config_health() -> bool:
    from config import load_admin_config
    try:
        load_admin_config()
        return True
    except ConfigurationMissing:
        return False


health_checker.register_health_check('order_store', check_store_config_health)
health_checker.register_health_check('carrier_api', check_carrier_config_health)
health_checker.register_health_check('catalog_sheet', check_catalog_config_health)
