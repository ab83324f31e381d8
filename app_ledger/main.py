# ==============================================================================
# API HTTP - Flask
# ==============================================================================
# Capa delgada sobre los servicios: valida sesión y CSRF, llama al servicio
# y devuelve JSON {"ok": true, ...}. Los errores del ledger se traducen en
# {"ok": false, "kind": ..., "error": ...} con su código HTTP.
#
# La cuenta SIEMPRE sale de la sesión firmada (session['account_id']),
# nunca del cuerpo ni de la query string.
# ==============================================================================

import logging
import os
import uuid
from datetime import datetime, time, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Mapping, Optional

from flask import Blueprint, Flask, current_app, request, session
from werkzeug.exceptions import HTTPException

from app_ledger.app_container import AppContainer, get_container
from app_ledger.config import load_config
from app_ledger.errors import LedgerError, ValidationError
from app_ledger.models import parse_date
from app_ledger.performance_logger import configure_logging, get_function_stats, init_profiling

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

MUTATING_METHODS = frozenset(['POST', 'PUT', 'PATCH', 'DELETE'])


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════

def container() -> AppContainer:
    return current_app.extensions['ledger']


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def query_int(name: str, default: Optional[int] = None) -> Optional[int]:
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"El parámetro '{name}' debe ser un número entero", field=name)


def query_day(name: str, end_of_range: bool = False) -> Optional[datetime]:
    """
    Fecha YYYY-MM-DD de la query como instante UTC.
    Con end_of_range el día se incluye completo: se devuelve la medianoche siguiente.
    """
    value = request.args.get(name)
    if not value:
        return None
    day = parse_date(value)
    if day is None:
        raise ValidationError(f"El parámetro '{name}' debe ser una fecha YYYY-MM-DD", field=name)
    moment = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return moment + timedelta(days=1) if end_of_range else moment


def generate_csrf_token() -> str:
    if 'csrf_token' not in session:
        session['csrf_token'] = uuid.uuid4().hex
    return session['csrf_token']


# ═══════════════════════════════════════════════════════════════════════════
# DECORADORES
# ═══════════════════════════════════════════════════════════════════════════

def account_required(f):
    """Exige sesión con cuenta y la pasa a la vista como account_id."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        account_id = session.get('account_id')
        if not account_id:
            return {"ok": False, "kind": "Unauthorized", "error": "Debes iniciar sesión."}, 401
        return f(*args, account_id=account_id, **kwargs)
    return wrapper


def verify_csrf(f):
    """Valida el token CSRF (header X-CSRF-Token o campo csrf_token) en peticiones que mutan."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        if request.method in MUTATING_METHODS and current_app.config.get('CSRF_ENABLED', True):
            token = session.get('csrf_token')
            sent = (
                request.headers.get('X-CSRF-Token') or
                request.headers.get('X-CSRFToken') or
                json_body().get('csrf_token')
            )
            if not token or not sent or token != sent:
                return {"ok": False, "kind": "CSRFError", "error": "CSRF token inválido"}, 403
        return f(*args, **kwargs)
    return wrapper


# ═══════════════════════════════════════════════════════════════════════════
# SESIÓN
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/session', methods=['GET'])
@account_required
def api_session(account_id):
    """Cuenta actual y token CSRF para las peticiones que mutan."""
    return {"ok": True, "account_id": account_id, "csrf_token": generate_csrf_token()}


# ═══════════════════════════════════════════════════════════════════════════
# CATÁLOGO
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/products', methods=['GET'])
@account_required
def api_list_products(account_id):
    products = container().catalog_service.list_products(account_id)
    return {"ok": True, "products": [p.to_dict() for p in products]}


@api.route('/products', methods=['POST'])
@account_required
@verify_csrf
def api_create_product(account_id):
    product = container().catalog_service.create_product(account_id, json_body())
    return {"ok": True, "product": product.to_dict()}, 201


@api.route('/products/<product_id>', methods=['GET'])
@account_required
def api_get_product(account_id, product_id):
    product = container().catalog_service.get_product(account_id, product_id)
    return {"ok": True, "product": product.to_dict()}


@api.route('/products/<product_id>', methods=['PATCH'])
@account_required
@verify_csrf
def api_update_product(account_id, product_id):
    product = container().catalog_service.update_product(account_id, product_id, json_body())
    return {"ok": True, "product": product.to_dict()}


@api.route('/products/<product_id>', methods=['DELETE'])
@account_required
@verify_csrf
def api_delete_product(account_id, product_id):
    container().catalog_service.delete_product(account_id, product_id)
    return {"ok": True}


@api.route('/products/<product_id>/decrement', methods=['POST'])
@account_required
@verify_csrf
def api_decrement_stock(account_id, product_id):
    product = container().catalog_service.decrement_stock(account_id, product_id, json_body().get('amount'))
    return {"ok": True, "product": product.to_dict()}


@api.route('/inventory/valuation', methods=['GET'])
@account_required
def api_inventory_valuation(account_id):
    return {"ok": True, "valuation": container().catalog_service.inventory_valuation(account_id)}


# ═══════════════════════════════════════════════════════════════════════════
# CLIENTES Y SOCIOS
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/customers', methods=['GET'])
@account_required
def api_list_customers(account_id):
    customers = container().registry_service.list_customers(account_id)
    return {"ok": True, "customers": [c.to_dict() for c in customers]}


@api.route('/customers/totals', methods=['GET'])
@account_required
def api_customer_totals(account_id):
    return {"ok": True, "customers": container().stats_service.customer_totals(account_id)}


@api.route('/customers', methods=['POST'])
@account_required
@verify_csrf
def api_create_customer(account_id):
    customer = container().registry_service.create_customer(account_id, json_body())
    return {"ok": True, "customer": customer.to_dict()}, 201


@api.route('/customers/<customer_id>', methods=['GET'])
@account_required
def api_get_customer(account_id, customer_id):
    services = container()
    customer = services.registry_service.get_customer(account_id, customer_id)
    orders = services.order_service.list_orders(account_id)
    return {
        "ok": True,
        "customer": customer.to_dict(),
        "orders": [o.to_dict() for o in orders if o.customer_id == customer_id],
    }


@api.route('/customers/<customer_id>', methods=['PATCH'])
@account_required
@verify_csrf
def api_update_customer(account_id, customer_id):
    customer = container().registry_service.update_customer(account_id, customer_id, json_body())
    return {"ok": True, "customer": customer.to_dict()}


@api.route('/customers/<customer_id>', methods=['DELETE'])
@account_required
@verify_csrf
def api_delete_customer(account_id, customer_id):
    removed = container().registry_service.delete_customer(account_id, customer_id)
    return {"ok": True, "deleted_orders": removed}


@api.route('/partners', methods=['GET'])
@account_required
def api_list_partners(account_id):
    partners = container().registry_service.list_partners(account_id)
    return {"ok": True, "partners": [p.to_dict() for p in partners]}


@api.route('/partners/totals', methods=['GET'])
@account_required
def api_partner_totals(account_id):
    return {"ok": True, "partners": container().stats_service.partner_totals(account_id)}


@api.route('/partners', methods=['POST'])
@account_required
@verify_csrf
def api_create_partner(account_id):
    partner = container().registry_service.create_partner(account_id, json_body())
    return {"ok": True, "partner": partner.to_dict()}, 201


@api.route('/partners/<partner_id>', methods=['GET'])
@account_required
def api_get_partner(account_id, partner_id):
    services = container()
    partner = services.registry_service.get_partner(account_id, partner_id)
    loans = services.loan_service.list_loans(account_id, partner_id)
    return {"ok": True, "partner": partner.to_dict(), "loans": [l.to_dict() for l in loans]}


@api.route('/partners/<partner_id>', methods=['PATCH'])
@account_required
@verify_csrf
def api_update_partner(account_id, partner_id):
    partner = container().registry_service.update_partner(account_id, partner_id, json_body())
    return {"ok": True, "partner": partner.to_dict()}


@api.route('/partners/<partner_id>', methods=['DELETE'])
@account_required
@verify_csrf
def api_delete_partner(account_id, partner_id):
    removed = container().registry_service.delete_partner(account_id, partner_id)
    return {"ok": True, "deleted_loans": removed}


# ═══════════════════════════════════════════════════════════════════════════
# PEDIDOS
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/orders', methods=['GET'])
@account_required
def api_list_orders(account_id):
    """
    Historial de pedidos.

    Query:
        status: pending | delivered | cancelled
        days: solo los creados en los últimos N días (30, 90...)
        view: 'delivery' ordena por fecha de entrega (panel)
    """
    service = container().order_service
    status = request.args.get('status') or None
    days = query_int('days')
    if request.args.get('view') == 'delivery':
        orders = service.list_orders_by_delivery(account_id, status)
    elif days is not None:
        orders = service.list_recent_orders(account_id, days, status)
    else:
        orders = service.list_orders(account_id, status)
    return {"ok": True, "orders": [o.to_dict() for o in orders]}


@api.route('/orders', methods=['POST'])
@account_required
@verify_csrf
def api_create_order(account_id):
    data = json_body()
    order = container().order_service.create_order(
        account_id,
        data.get('customer_id'),
        data.get('lines') or [],
        data.get('delivery_date'),
        # Pagado salvo que el formulario indique lo contrario
        data.get('is_paid', True),
    )
    return {"ok": True, "order": order.to_dict()}, 201


@api.route('/orders/<order_id>', methods=['GET'])
@account_required
def api_get_order(account_id, order_id):
    order = container().order_service.get_order(account_id, order_id)
    return {"ok": True, "order": order.to_dict()}


@api.route('/orders/<order_id>/status', methods=['POST'])
@account_required
@verify_csrf
def api_order_status(account_id, order_id):
    status = json_body().get('status')
    if not status:
        raise ValidationError("El campo 'status' es obligatorio", field='status')
    order = container().fulfillment_service.transition(account_id, order_id, status)
    return {"ok": True, "order": order.to_dict()}


@api.route('/orders/<order_id>/paid', methods=['POST'])
@account_required
@verify_csrf
def api_order_paid(account_id, order_id):
    data = json_body()
    if 'is_paid' not in data:
        raise ValidationError("El campo 'is_paid' es obligatorio", field='is_paid')
    order = container().order_service.set_paid(account_id, order_id, data['is_paid'])
    return {"ok": True, "order": order.to_dict()}


# ═══════════════════════════════════════════════════════════════════════════
# PRÉSTAMOS
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/loans', methods=['GET'])
@account_required
def api_list_loans(account_id):
    loans = container().loan_service.list_loans(account_id, request.args.get('partner_id') or None)
    return {"ok": True, "loans": [l.to_dict() for l in loans]}


@api.route('/loans', methods=['POST'])
@account_required
@verify_csrf
def api_create_loan(account_id):
    data = json_body()
    loan = container().loan_service.create_loan(
        account_id,
        data.get('partner_id'),
        data.get('product_id'),
        data.get('quantity'),
        data.get('loan_date'),
    )
    return {"ok": True, "loan": loan.to_dict()}, 201


@api.route('/loans/<loan_id>', methods=['GET'])
@account_required
def api_get_loan(account_id, loan_id):
    return {"ok": True, "loan": container().loan_service.get_loan(account_id, loan_id).to_dict()}


@api.route('/loans/<loan_id>', methods=['DELETE'])
@account_required
@verify_csrf
def api_delete_loan(account_id, loan_id):
    container().loan_service.delete_loan(account_id, loan_id)
    return {"ok": True}


# ═══════════════════════════════════════════════════════════════════════════
# ESTADÍSTICAS, REPORTES Y AUDITORÍA
# ═══════════════════════════════════════════════════════════════════════════

@api.route('/dashboard', methods=['GET'])
@account_required
def api_dashboard(account_id):
    services = container()
    upcoming = services.order_service.list_orders_by_delivery(account_id, 'pending')
    return {
        "ok": True,
        "summary": services.stats_service.dashboard(account_id),
        "pending_orders": [o.to_dict() for o in upcoming],
    }


@api.route('/stats', methods=['GET'])
@account_required
def api_stats(account_id):
    """Serie de los últimos N meses (12 por defecto) y totales por socio."""
    stats = container().stats_service
    months = query_int('months', 12)
    return {
        "ok": True,
        "series": stats.sales_series(account_id, months),
        "partners": stats.partner_totals(account_id),
    }


@api.route('/stats/delivered', methods=['GET'])
@account_required
def api_delivered_totals(account_id):
    """Totales entregados entre start y end (YYYY-MM-DD, ambos días incluidos)."""
    start = query_day('start')
    if start is None:
        raise ValidationError("El parámetro 'start' es obligatorio", field='start')
    totals = container().stats_service.delivered_totals(account_id, start, query_day('end', end_of_range=True))
    return {"ok": True, "totals": totals}


@api.route('/reports/<report_type>', methods=['GET'])
@account_required
def api_report(account_id, report_type):
    rows = container().report_service.build(
        account_id,
        report_type,
        start_month=request.args.get('start_month') or None,
        end_month=request.args.get('end_month') or None,
    )
    return {"ok": True, "report": report_type, "rows": rows}


@api.route('/audit', methods=['GET'])
@account_required
def api_audit(account_id):
    logs = container().audit_service.get_logs(
        account_id,
        request.args.get('type') or None,
        query_int('limit', 200),
    )
    return {"ok": True, "logs": [log.to_dict() for log in logs]}


@api.route('/performance', methods=['GET'])
@account_required
def api_performance(account_id):
    """Llamadas y tiempos de las funciones perfiladas del proceso."""
    return {"ok": True, "functions": get_function_stats()}


# ═══════════════════════════════════════════════════════════════════════════
# MANEJO DE ERRORES
# ═══════════════════════════════════════════════════════════════════════════

def handle_ledger_error(error: LedgerError):
    if error.status_code >= 500:
        logger.error("%s: %s", error.kind, error.detail)
    else:
        logger.info("%s: %s", error.kind, error.detail)
    return error.to_dict(), error.status_code


def handle_http_error(error: HTTPException):
    return {"ok": False, "kind": "HTTPError", "error": error.description}, error.code


# ═══════════════════════════════════════════════════════════════════════════
# FÁBRICA DE LA APP
# ═══════════════════════════════════════════════════════════════════════════

def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Crea la app Flask con su contenedor de servicios.

    Args:
        overrides: Claves de configuración que reemplazan las del entorno
                   (DATA_DIR, LOG_DIR, CSRF_ENABLED, CLOCK, ...)

    Returns:
        App lista para servir
    """
    app = Flask(__name__)
    app.config.update(load_config())
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config['LOG_DIR'])

    # Un contenedor por app: se descarta el singleton anterior
    AppContainer.reset_instance()
    options = {
        'lock_timeout': app.config['LOCK_TIMEOUT'],
        'dashboard_window_days': app.config['DASHBOARD_WINDOW_DAYS'],
    }
    if app.config.get('CLOCK') is not None:
        options['clock'] = app.config['CLOCK']
    app.extensions['ledger'] = get_container(app.config['DATA_DIR'], **options)

    init_profiling(app)

    app.register_blueprint(api)
    app.register_error_handler(LedgerError, handle_ledger_error)
    app.register_error_handler(HTTPException, handle_http_error)

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        return response

    logger.info("Ledger iniciado con datos en %s", app.config['DATA_DIR'])
    return app


if __name__ == "__main__":
    # Configuración para desarrollo local
    # En producción usar WSGI (gunicorn wsgi:app)
    DEBUG = os.environ.get('FLASK_DEBUG', '0') == '1'
    HOST = os.environ.get('FLASK_HOST', '127.0.0.1')
    PORT = int(os.environ.get('FLASK_PORT', 5000))
    create_app().run(host=HOST, port=PORT, debug=DEBUG)
