# validation_utils.py - Validación de datos de proveedores, facturas y detalles
#
# Cada validador devuelve (datos_normalizados, errores) donde errores es un
# dict campo -> [mensajes]. Si errores está vacío los datos son válidos.

import math
import re
from typing import Any, Dict, List, Tuple

from utils.date_utils import parse_api_date

PRODUCTO_DESCONOCIDO = "Desconocido"

TIPOS_PROVEEDOR = ("Crédito", "Contado")
TIPOS_PAGO = ("Contado", "Crédito")

ESTADO_REGISTRADA = "Registrada"
ESTADO_IMPRESA = "Impresa"
ESTADO_CANCELADA = "Cancelada"
ESTADOS_FACTURA = (ESTADO_REGISTRADA, ESTADO_IMPRESA, ESTADO_CANCELADA)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Errors = Dict[str, List[str]]


def _add_error(errors: Errors, field: str, message: str):
    errors.setdefault(field, []).append(message)


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('on', 'true', '1', 'yes', 'si', 'sí')


def _parse_int(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        text = str(value).strip()
        if re.fullmatch(r"-?\d+(\.0+)?", text):
            return int(float(text))
    except (TypeError, ValueError):
        pass
    return None


def _parse_number(value):
    if isinstance(value, bool) or value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # "nan" e "inf" no son importes válidos
    return number if math.isfinite(number) else None


def _min_length(errors: Errors, data: Dict[str, Any], field: str, minimum: int, message: str):
    value = str(data.get(field) or '').strip()
    if len(value) < minimum:
        _add_error(errors, field, message)
    return value


def format_validation_errors(errors: Errors) -> str:
    """Une los errores por campo en un único mensaje legible"""
    detail = '; '.join(f"{field}: {', '.join(messages)}" for field, messages in errors.items())
    return f"Datos de formulario no válidos: {detail}"


def validate_proveedor(raw: Dict[str, Any]) -> Tuple[Dict[str, Any], Errors]:
    raw = raw or {}
    errors: Errors = {}

    cedula_ruc = str(raw.get('cedula_ruc') or '').strip()
    if len(cedula_ruc) < 10:
        _add_error(errors, 'cedula_ruc', "Cédula/RUC debe tener al menos 10 caracteres.")
    elif len(cedula_ruc) > 20:
        _add_error(errors, 'cedula_ruc', "Cédula/RUC no puede tener más de 20 caracteres.")

    nombre = _min_length(errors, raw, 'nombre', 3, "El nombre debe tener al menos 3 caracteres.")
    ciudad = _min_length(errors, raw, 'ciudad', 3, "La ciudad debe tener al menos 3 caracteres.")
    direccion = _min_length(errors, raw, 'direccion', 5, "La dirección debe tener al menos 5 caracteres.")
    telefono = _min_length(errors, raw, 'telefono', 7, "El teléfono debe tener al menos 7 caracteres.")

    tipo_proveedor = raw.get('tipo_proveedor')
    if tipo_proveedor not in TIPOS_PROVEEDOR:
        _add_error(errors, 'tipo_proveedor', "El tipo de proveedor es requerido.")

    email = str(raw.get('email') or '').strip()
    if not EMAIL_PATTERN.match(email):
        _add_error(errors, 'email', "Dirección de email inválida.")

    estado = parse_bool(raw['estado']) if 'estado' in raw else True

    data = {
        "cedula_ruc": cedula_ruc,
        "nombre": nombre,
        "ciudad": ciudad,
        "tipo_proveedor": tipo_proveedor,
        "direccion": direccion,
        "telefono": telefono,
        "email": email,
        "estado": estado,
    }
    return data, errors


def validate_factura(raw: Dict[str, Any]) -> Tuple[Dict[str, Any], Errors]:
    """
    Valida la cabecera de una factura. Las fechas se devuelven como `date`;
    la serialización a yyyy-MM-dd la hace quien envía a la API.
    """
    raw = raw or {}
    errors: Errors = {}

    proveedor = str(raw.get('proveedor_cedula_ruc') or '').strip()
    if not proveedor:
        _add_error(errors, 'proveedor_cedula_ruc', "Debe seleccionar un proveedor.")

    numero = str(raw.get('numero_factura_proveedor') or '').strip()
    if not numero:
        _add_error(errors, 'numero_factura_proveedor', "El número de factura del proveedor es requerido.")

    fecha_emision = parse_api_date(raw.get('fecha_emision'))
    if fecha_emision is None:
        _add_error(errors, 'fecha_emision', "La fecha de emisión es requerida.")

    fecha_vencimiento = None
    if raw.get('fecha_vencimiento'):
        fecha_vencimiento = parse_api_date(raw.get('fecha_vencimiento'))
        if fecha_vencimiento is None:
            _add_error(errors, 'fecha_vencimiento', "La fecha de vencimiento no es válida.")

    estado = raw.get('estado') or ESTADO_REGISTRADA
    if estado not in ESTADOS_FACTURA:
        _add_error(errors, 'estado', "El estado de la factura no es válido.")

    tipo_pago = raw.get('tipo_pago')
    if tipo_pago not in TIPOS_PAGO:
        _add_error(errors, 'tipo_pago', "El tipo de pago es requerido.")

    totals = {}
    for field in ('subtotal', 'iva', 'total'):
        value = raw.get(field)
        number = 0.0 if value in (None, '') else _parse_number(value)
        if number is None or number < 0:
            _add_error(errors, field, "Debe ser un número mayor o igual a 0.")
            number = 0.0
        totals[field] = number

    data = {
        "proveedor_cedula_ruc": proveedor,
        "numero_factura_proveedor": numero,
        "fecha_emision": fecha_emision,
        "fecha_vencimiento": fecha_vencimiento,
        "estado": estado,
        "tipo_pago": tipo_pago,
        **totals,
    }
    return data, errors


def validate_detalle(raw: Dict[str, Any], require_factura: bool = True) -> Tuple[Dict[str, Any], Errors]:
    """Valida un detalle de factura. Los campos derivados nunca se toman del cliente.

    Con require_factura=False no se exige factura_id (detalles de una factura
    que todavía no fue creada).
    """
    raw = raw or {}
    errors: Errors = {}

    factura_id = _parse_int(raw.get('factura_id'))
    if require_factura and (factura_id is None or factura_id < 1):
        _add_error(errors, 'factura_id', "La factura es requerida.")

    producto_id = _parse_int(raw.get('producto_id'))
    if producto_id is None or producto_id < 1:
        _add_error(errors, 'producto_id', "Debe seleccionar un producto.")

    cantidad = _parse_int(raw.get('cantidad'))
    if cantidad is None or cantidad < 1:
        _add_error(errors, 'cantidad', "La cantidad debe ser un número entero mayor o igual a 1.")

    precio_unitario = _parse_number(raw.get('precio_unitario'))
    if precio_unitario is None or precio_unitario < 0:
        _add_error(errors, 'precio_unitario', "El precio unitario debe ser mayor o igual a 0.")

    nombre_producto = str(raw.get('nombre_producto') or '').strip()
    if not nombre_producto or nombre_producto == PRODUCTO_DESCONOCIDO:
        _add_error(errors, 'nombre_producto', "No se pudo encontrar el nombre del producto.")

    data = {
        "factura_id": factura_id,
        "producto_id": producto_id,
        "cantidad": cantidad,
        "precio_unitario": precio_unitario,
        "aplica_iva": parse_bool(raw.get('aplica_iva')),
        "nombre_producto": nombre_producto,
    }
    return data, errors
