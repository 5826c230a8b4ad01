# factura_utils.py - Normalización y armado de cabeceras de factura

from typing import Any, Dict, Optional, Tuple

from utils.date_utils import format_api_date
from utils.totals import safe_float
from utils.validation_utils import (
    ESTADO_CANCELADA,
    ESTADO_IMPRESA,
    Errors,
    validate_factura,
)

MONTO_FIELDS = ('subtotal', 'iva', 'total')


def normalize_factura(factura: Dict[str, Any]) -> Dict[str, Any]:
    """La API devuelve los montos como texto: convertirlos a float"""
    normalized = dict(factura)
    for field in MONTO_FIELDS:
        normalized[field] = safe_float(factura.get(field))
    return normalized


def normalize_detalle(detalle: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(detalle)
    try:
        normalized['cantidad'] = int(float(detalle.get('cantidad') or 0))
    except (TypeError, ValueError):
        normalized['cantidad'] = 0
    for field in ('precio_unitario',) + MONTO_FIELDS:
        normalized[field] = safe_float(detalle.get(field))
    return normalized


def same_id(left, right) -> bool:
    """Compara ids que pueden venir como int o como texto"""
    if left is None or right is None:
        return False
    return str(left).strip() == str(right).strip()


def is_modification_disabled(factura: Optional[Dict[str, Any]]) -> bool:
    """Una factura Impresa o Cancelada ya no admite cambios en sus detalles"""
    if not factura:
        return False
    return factura.get('estado') in (ESTADO_IMPRESA, ESTADO_CANCELADA)


def build_factura_payload(raw: Dict[str, Any], **extra) -> Tuple[Dict[str, Any], Errors]:
    """
    Valida una cabecera y la deja lista para la API (fechas como yyyy-MM-dd).
    `extra` se agrega al final (usuario_creacion, usuario_modificacion, etc.).
    """
    data, errors = validate_factura(raw)
    if errors:
        return data, errors

    payload = dict(data)
    payload['fecha_emision'] = format_api_date(data['fecha_emision'])
    payload['fecha_vencimiento'] = format_api_date(data['fecha_vencimiento']) if data['fecha_vencimiento'] else None
    if raw.get('numero_factura'):
        payload['numero_factura'] = raw['numero_factura']
    payload.update(extra)
    return payload, errors
