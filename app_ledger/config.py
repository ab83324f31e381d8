# ==============================================================================
# CONFIGURACIÓN - Variables de entorno
# ==============================================================================
# Toda la configuración se lee de variables LEDGER_* al crear la app.
# create_app(overrides) permite reemplazar cualquier clave (tests).
#
#   LEDGER_SECRET_KEY             Clave de firma de la sesión (obligatoria en producción)
#   LEDGER_DATA_DIR               Directorio de ledger.json
#   LEDGER_LOG_DIR                Directorio de logs
#   LEDGER_DASHBOARD_WINDOW_DAYS  Ventana de entregados del panel (60)
#   LEDGER_LOCK_TIMEOUT           Espera máxima por el lock del almacén, en segundos (5)
#   LEDGER_ENABLE_PROFILING       Mide tiempos de rutas y funciones (true)
#   LEDGER_PRODUCTION_MODE        Cookies seguras y aviso sin clave secreta (false)
# ==============================================================================

import logging
import os
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# SECRET_KEY: En producción DEBE definirse via variable de entorno
# Comando: export LEDGER_SECRET_KEY="tu_clave_secreta_muy_larga_y_aleatoria"
DEFAULT_SECRET = "app_ledger_dev_secret_key_change_in_production"


def _env_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    value = environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_number(environ: Mapping[str, str], key: str, default, cast):
    value = environ.get(key)
    if value is None or value == '':
        return default
    try:
        return cast(value)
    except ValueError:
        logger.warning("Valor inválido para %s: %r, se usa %r", key, value, default)
        return default


def load_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Construye la configuración de la app desde el entorno.

    Args:
        environ: Mapa de variables (por defecto os.environ)

    Returns:
        Diccionario listo para app.config.update()
    """
    environ = os.environ if environ is None else environ
    production = _env_bool(environ, 'LEDGER_PRODUCTION_MODE', False)
    secret = environ.get('LEDGER_SECRET_KEY')

    if production and not secret:
        logger.warning("LEDGER_PRODUCTION_MODE activo sin LEDGER_SECRET_KEY definida")

    return {
        'SECRET_KEY': secret or DEFAULT_SECRET,
        'PRODUCTION_MODE': production,
        'DATA_DIR': environ.get('LEDGER_DATA_DIR') or os.path.join(BASE_DIR, 'data'),
        'LOG_DIR': environ.get('LEDGER_LOG_DIR') or os.path.join(BASE_DIR, 'logs'),
        'DASHBOARD_WINDOW_DAYS': _env_number(environ, 'LEDGER_DASHBOARD_WINDOW_DAYS', 60, int),
        'LOCK_TIMEOUT': _env_number(environ, 'LEDGER_LOCK_TIMEOUT', 5.0, float),
        'ENABLE_PROFILING': _env_bool(environ, 'LEDGER_ENABLE_PROFILING', True),
        'CSRF_ENABLED': True,

        # Configuración de cookies de sesión
        'SESSION_COOKIE_HTTPONLY': True,        # Protege contra XSS
        'SESSION_COOKIE_SECURE': production,    # Solo HTTPS en producción
        'SESSION_COOKIE_SAMESITE': 'Lax',       # Protección CSRF básica
        'PERMANENT_SESSION_LIFETIME': 86400,    # 24 horas
        'MAX_CONTENT_LENGTH': 1 * 1024 * 1024,  # 1 MB de JSON
    }
