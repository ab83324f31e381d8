# ==============================================================================
# VALIDACIÓN DE ENTRADAS
# ==============================================================================
# Conversión y validación de atributos recibidos por los servicios.
# Todo fallo se reporta como ValidationError con el nombre del campo.
# ==============================================================================

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from app_ledger.errors import ValidationError
from app_ledger.models import CENTS, parse_date


# Cotas de entrada: precio x cantidad y los totales de un pedido quedan
# muy por debajo de la precisión de Decimal (28 dígitos)
MAX_QUANTITY = 10 ** 9
MAX_AMOUNT = Decimal('1000000000000')


def require_text(attrs: Dict[str, Any], field: str) -> str:
    """Texto obligatorio, sin espacios a los lados."""
    value = attrs.get(field)
    if value is None or not str(value).strip():
        raise ValidationError(f"El campo '{field}' es obligatorio", field=field)
    return str(value).strip()


def optional_text(attrs: Dict[str, Any], field: str) -> str:
    value = attrs.get(field)
    return str(value).strip() if value is not None else ''


def _as_int(value: Any, field: str) -> int:
    # bool es subclase de int: True no es una cantidad
    if isinstance(value, bool):
        raise ValidationError(f"El campo '{field}' debe ser un número entero", field=field)
    if isinstance(value, int):
        number = value
    else:
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            raise ValidationError(f"El campo '{field}' debe ser un número entero", field=field)
    if number > MAX_QUANTITY:
        raise ValidationError(f"El campo '{field}' no puede superar {MAX_QUANTITY}", field=field)
    return number


def positive_int(value: Any, field: str = 'quantity') -> int:
    """
    Entero >= 1 (cantidades de líneas, préstamos y descuentos).

    Raises:
        ValidationError: Si falta, no es entero, es <= 0 o supera MAX_QUANTITY
    """
    if value is None:
        raise ValidationError(f"El campo '{field}' es obligatorio", field=field)
    number = _as_int(value, field)
    if number <= 0:
        raise ValidationError(f"El campo '{field}' debe ser mayor que 0", field=field)
    return number


def non_negative_int(value: Any, field: str) -> int:
    number = _as_int(value, field)
    if number < 0:
        raise ValidationError(f"El campo '{field}' no puede ser negativo", field=field)
    return number


def non_negative_decimal(value: Any, field: str, places: Optional[Decimal] = None) -> Decimal:
    """
    Decimal >= 0. Con places se redondea (ej: CENTS para precios).

    Raises:
        ValidationError: Si no es numérico, es negativo o supera MAX_AMOUNT
    """
    if isinstance(value, bool) or value is None or value == '':
        raise ValidationError(f"El campo '{field}' debe ser numérico", field=field)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"El campo '{field}' debe ser numérico", field=field)
    if not number.is_finite():
        raise ValidationError(f"El campo '{field}' debe ser numérico", field=field)
    if number < 0:
        raise ValidationError(f"El campo '{field}' no puede ser negativo", field=field)
    if number > MAX_AMOUNT:
        raise ValidationError(f"El campo '{field}' no puede superar {MAX_AMOUNT}", field=field)
    if places is None:
        return number
    try:
        return number.quantize(places)
    except InvalidOperation:
        raise ValidationError(f"El campo '{field}' tiene demasiados dígitos", field=field)


def money(value: Any, field: str) -> Decimal:
    return non_negative_decimal(value, field, CENTS)


def optional_date(value: Any, field: str) -> Optional[date]:
    """Fecha ISO (YYYY-MM-DD) opcional; un valor presente pero inválido falla."""
    if value is None or value == '':
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"El campo '{field}' debe ser una fecha YYYY-MM-DD", field=field)
    return parsed


def as_bool(value: Any, field: str) -> bool:
    """Acepta bool o las cadenas true/false/1/0 que envían los formularios."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', '1', 'yes', 'si', 'sí'):
        return True
    if isinstance(value, str) and value.strip().lower() in ('false', '0', 'no'):
        return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f"El campo '{field}' debe ser verdadero o falso", field=field)
