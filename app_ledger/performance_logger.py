# ==============================================================================
# LOGGING Y PROFILING INTERNO
# ==============================================================================
# Configura los logs de la aplicación y mide el rendimiento de rutas y
# funciones clave sin afectar la respuesta al usuario.
#
# ARCHIVOS (en LEDGER_LOG_DIR, por defecto ./logs):
#   ledger.log       → log general de la aplicación
#   performance.log  → tiempo de cada petición
#   slow.log         → rutas y funciones que superan los umbrales
#
# ACTIVAR/DESACTIVAR: Variable LEDGER_ENABLE_PROFILING
# ==============================================================================

import logging
import os
import threading
import time
from collections import defaultdict
from functools import wraps

# ═══════════════════════════════════════════════════════════════════════════
# CONFIGURACIÓN
# ═══════════════════════════════════════════════════════════════════════════

ENABLE_PROFILING = os.environ.get('LEDGER_ENABLE_PROFILING', 'true').lower() in ('1', 'true', 'yes')

# Umbrales de tiempo (en milisegundos)
THRESHOLD_WARNING = 300   # Advertencia si supera 300ms
THRESHOLD_CRITICAL = 700  # Crítico si supera 700ms

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

perf_logger = logging.getLogger('app_ledger.performance')
slow_logger = logging.getLogger('app_ledger.performance.slow')

# Mapeo de rutas a nombres legibles (para logs más humanos)
ROUTE_NAMES = {
    # Catálogo
    'GET /api/products': 'Ver inventario',
    'POST /api/products': 'Crear producto',
    'PATCH /api/products/<product_id>': 'Editar producto',
    'DELETE /api/products/<product_id>': 'Eliminar producto',
    'POST /api/products/<product_id>/decrement': 'Descontar stock',

    # Registros
    'POST /api/customers': 'Crear cliente',
    'DELETE /api/customers/<customer_id>': 'Eliminar cliente',
    'POST /api/partners': 'Crear socio',
    'DELETE /api/partners/<partner_id>': 'Eliminar socio',

    # Pedidos
    'GET /api/orders': 'Ver historial de pedidos',
    'POST /api/orders': 'Crear pedido',
    'POST /api/orders/<order_id>/status': 'Cambiar estado de pedido',
    'POST /api/orders/<order_id>/paid': 'Marcar pago',

    # Préstamos
    'POST /api/loans': 'Registrar préstamo',
    'DELETE /api/loans/<loan_id>': 'Eliminar préstamo',

    # Estadísticas y reportes
    'GET /api/dashboard': 'Ver panel principal',
    'GET /api/stats': 'Ver estadísticas',
    'GET /api/reports/<report_type>': 'Generar reporte',
    'GET /api/performance': 'Ver rendimiento',
}


# ═══════════════════════════════════════════════════════════════════════════
# INICIALIZACIÓN
# ═══════════════════════════════════════════════════════════════════════════

_configured_dirs = set()
_configure_lock = threading.Lock()


def configure_logging(log_dir: str, level: int = logging.INFO) -> None:
    """
    Configura los handlers de archivo del paquete (una sola vez por directorio).

    Args:
        log_dir: Directorio de logs (se crea si no existe)
        level: Nivel mínimo del log general
    """
    with _configure_lock:
        if log_dir in _configured_dirs:
            return
        os.makedirs(log_dir, exist_ok=True)
        formatter = logging.Formatter(LOG_FORMAT)

        app_handler = logging.FileHandler(os.path.join(log_dir, 'ledger.log'), encoding='utf-8')
        app_handler.setFormatter(formatter)
        root = logging.getLogger('app_ledger')
        root.setLevel(level)
        root.addHandler(app_handler)

        perf_handler = logging.FileHandler(os.path.join(log_dir, 'performance.log'), encoding='utf-8')
        perf_handler.setFormatter(formatter)
        perf_logger.addHandler(perf_handler)

        slow_handler = logging.FileHandler(os.path.join(log_dir, 'slow.log'), encoding='utf-8')
        slow_handler.setFormatter(formatter)
        slow_logger.addHandler(slow_handler)

        _configured_dirs.add(log_dir)


# ═══════════════════════════════════════════════════════════════════════════
# ESTADÍSTICAS DE FUNCIONES (en memoria)
# ═══════════════════════════════════════════════════════════════════════════

# Estructura: {nombre_funcion: {calls: int, total_time: float, max_time: float}}
_function_stats = defaultdict(lambda: {'calls': 0, 'total_time': 0.0, 'max_time': 0.0})
_stats_lock = threading.Lock()


def _get_route_name(method, path, rule=None):
    """
    Obtiene nombre legible para una ruta.
    Usa la regla de Flask (con parámetros) si está registrada; si no, la ruta raw.
    """
    for key in (f"{method} {path}", f"{method} {rule}" if rule else None):
        if key and key in ROUTE_NAMES:
            return ROUTE_NAMES[key]
    return f"{method} {path}"


# ═══════════════════════════════════════════════════════════════════════════
# 1️⃣ PROFILING DE RUTAS (Middleware Flask)
# ═══════════════════════════════════════════════════════════════════════════

def log_route_performance(method, path, rule, time_ms, account=None):
    """
    Registra el rendimiento de una ruta.

    Args:
        method: GET, POST, etc.
        path: Ruta solicitada (/api/orders)
        rule: Regla de Flask (/api/orders/<order_id>/status)
        time_ms: Tiempo en milisegundos
        account: Cuenta que hizo la petición (opcional)
    """
    action_name = _get_route_name(method, path, rule)
    perf_logger.info("%s | cuenta=%s | %s %s | %.0f ms", action_name, account or 'anónimo', method, path, time_ms)

    if time_ms >= THRESHOLD_CRITICAL:
        slow_logger.critical(
            "Ruta MUY LENTA: %s (%s %s) %.0f ms (umbral: %d ms)",
            action_name, method, path, time_ms, THRESHOLD_CRITICAL
        )
    elif time_ms >= THRESHOLD_WARNING:
        slow_logger.warning(
            "Ruta LENTA: %s (%s %s) %.0f ms (umbral: %d ms)",
            action_name, method, path, time_ms, THRESHOLD_WARNING
        )


# ═══════════════════════════════════════════════════════════════════════════
# 2️⃣ HOOKS PARA FLASK (before/after request)
# ═══════════════════════════════════════════════════════════════════════════

def init_profiling(app):
    """
    Inicializa el profiling en una app Flask.
    Registra hooks before_request y after_request.

    Uso:
        from app_ledger.performance_logger import init_profiling
        init_profiling(app)
    """
    if not app.config.get('ENABLE_PROFILING', ENABLE_PROFILING):
        return

    @app.before_request
    def _start_timer():
        from flask import g
        g.start_time = time.perf_counter()

    @app.after_request
    def _log_request(response):
        from flask import g, request, session

        if not hasattr(g, 'start_time'):
            return response

        elapsed = (time.perf_counter() - g.start_time) * 1000  # ms
        rule = str(request.url_rule) if request.url_rule else request.path
        log_route_performance(request.method, request.path, rule, elapsed, session.get('account_id'))
        return response


# ═══════════════════════════════════════════════════════════════════════════
# 3️⃣ DECORADOR PARA FUNCIONES CLAVE
# ═══════════════════════════════════════════════════════════════════════════

def profile_function(func=None, name=None):
    """
    Decorador para medir rendimiento de funciones críticas.

    Uso:
        @profile_function
        def mi_funcion():
            ...

        @profile_function(name="Entregar pedido")
        def transition(...):
            ...

    Registra:
        - Cantidad de llamadas
        - Tiempo promedio
        - Tiempo máximo
    """
    def decorator(fn):
        if not ENABLE_PROFILING:
            return fn

        func_name = name or fn.__name__

        @wraps(fn)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000

                with _stats_lock:
                    stats = _function_stats[func_name]
                    stats['calls'] += 1
                    stats['total_time'] += elapsed_ms
                    if elapsed_ms > stats['max_time']:
                        stats['max_time'] = elapsed_ms

                if elapsed_ms >= THRESHOLD_CRITICAL:
                    slow_logger.critical("Función CRÍTICA: %s %.0f ms", func_name, elapsed_ms)
                elif elapsed_ms >= THRESHOLD_WARNING:
                    slow_logger.warning("Función LENTA: %s %.0f ms", func_name, elapsed_ms)

        return wrapper

    # Permitir uso sin paréntesis: @profile_function
    if func is not None:
        return decorator(func)
    return decorator


# ═══════════════════════════════════════════════════════════════════════════
# 4️⃣ REPORTE DE ESTADÍSTICAS
# ═══════════════════════════════════════════════════════════════════════════

def get_function_stats():
    """
    Obtiene estadísticas de todas las funciones perfiladas.

    Returns:
        dict: {nombre: {calls, avg_time, max_time}}
    """
    with _stats_lock:
        result = {}
        for func_name, stats in _function_stats.items():
            calls = stats['calls']
            avg = stats['total_time'] / calls if calls > 0 else 0
            result[func_name] = {
                'calls': calls,
                'avg_time': round(avg, 2),
                'max_time': round(stats['max_time'], 2)
            }
        return result


def reset_stats():
    """Reinicia todas las estadísticas (útil para testing)"""
    with _stats_lock:
        _function_stats.clear()


__all__ = [
    'ENABLE_PROFILING',
    'configure_logging',
    'init_profiling',
    'profile_function',
    'get_function_stats',
    'reset_stats',
]
