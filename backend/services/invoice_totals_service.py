"""
Sincronización de totales de factura con sus detalles.

Cada alta, modificación o baja de un detalle se hace en dos pasos contra la
API de Compras: primero se guarda el detalle y después se recalculan y se
escriben los totales de la cabecera. No hay transacción entre ambos pasos:
si el recálculo falla, el detalle ya quedó guardado y el resultado lo indica
con `stale_totals: True` para que quien llama sepa que los totales de la
factura están desactualizados.

Todas las operaciones devuelven un dict {success, message, data?} y no
propagan excepciones.
"""

import traceback
from typing import Any, Dict, List, Optional, Tuple

from utils.factura_utils import build_factura_payload, normalize_detalle, same_id
from utils.http_utils import make_compras_request, parse_json_response, service_result
from utils.logging_utils import log_error, log_function_call, log_success
from utils.totals import compute_invoice_totals, compute_line_item
from utils.validation_utils import format_validation_errors, validate_detalle

DETALLES_ENDPOINT = "/detalles-factura"
FACTURAS_ENDPOINT = "/facturas"

UNKNOWN_ERROR_MESSAGE = "Ocurrió un error desconocido."


class TotalsRecomputeError(Exception):
    """No se pudieron recalcular y guardar los totales de una factura.

    `fatal` indica que la cabecera guardada no es válida (error de datos,
    reintentar no lo resuelve).
    """

    def __init__(self, message: str, fatal: bool = False):
        super().__init__(message)
        self.fatal = fatal


def _error_result(error_response: Dict[str, Any], **extra) -> Dict[str, Any]:
    return service_result(
        False,
        error_response.get('message') or UNKNOWN_ERROR_MESSAGE,
        status_code=error_response.get('status_code', 500),
        **extra
    )


def fetch_detalles_factura(session, factura_id) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Trae todos los detalles y deja solo los de la factura indicada"""
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint=DETALLES_ENDPOINT,
        operation_name=f"Get detalles de factura {factura_id}",
        error_message="Error al obtener los detalles de la factura."
    )
    if error:
        return [], error

    detalles = parse_json_response(response, [])
    if not isinstance(detalles, list):
        return [], {
            "success": False,
            "message": "La respuesta de detalles-factura no es una lista.",
            "status_code": 502
        }
    return [normalize_detalle(d) for d in detalles if same_id(d.get('factura_id'), factura_id)], None



def fetch_detalle(session, detalle_id) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """La API no expone GET por id: se busca en la lista completa"""
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint=DETALLES_ENDPOINT,
        operation_name=f"Buscar detalle {detalle_id}",
        error_message="Error al obtener los detalles de factura."
    )
    if error:
        return None, error

    detalles = parse_json_response(response, [])
    for detalle in detalles if isinstance(detalles, list) else []:
        if isinstance(detalle, dict) and same_id(detalle.get('id'), detalle_id):
            return normalize_detalle(detalle), None
    return None, {"success": False, "message": "Detalle no encontrado", "status_code": 404}


def recompute_factura_totals(session, user_id, factura_id) -> Dict[str, Any]:
    """
    Recalcula subtotal/iva/total de la factura a partir de sus detalles
    actuales y guarda la cabecera completa. Devuelve la factura actualizada.

    Raises:
        TotalsRecomputeError: ante cualquier falla de lectura, validación o escritura.
    """
    log_function_call(f"recompute_factura_totals({factura_id})")
    prefix = "No se pudieron recalcular los totales de la factura"
    try:
        detalles, error = fetch_detalles_factura(session, factura_id)
        if error:
            raise TotalsRecomputeError(f"{prefix}: {error.get('message')}")

        totals = compute_invoice_totals(detalles)

        response, error = make_compras_request(
            session=session,
            method="GET",
            endpoint=f"{FACTURAS_ENDPOINT}/{factura_id}",
            operation_name=f"Get factura {factura_id} para recalcular totales",
            error_message="Error al obtener la factura."
        )
        if error:
            raise TotalsRecomputeError(f"{prefix}: {error.get('message')}")

        factura = parse_json_response(response)
        if not isinstance(factura, dict):
            raise TotalsRecomputeError(f"{prefix}: la factura {factura_id} no devolvió datos.")

        merged = {**factura, **totals}
        payload, errors = build_factura_payload(merged, usuario_modificacion=user_id)
        if errors:
            raise TotalsRecomputeError(
                f"{prefix}: los datos guardados de la factura son inválidos. {format_validation_errors(errors)}",
                fatal=True
            )

        response, error = make_compras_request(
            session=session,
            method="PUT",
            endpoint=f"{FACTURAS_ENDPOINT}/{factura_id}",
            data=payload,
            operation_name=f"Update totales de factura {factura_id}",
            error_message="Error al actualizar los totales de la factura."
        )
        if error:
            raise TotalsRecomputeError(f"{prefix}: {error.get('message')}")

        updated = parse_json_response(response)
        log_success(
            f"Factura {factura_id}: subtotal={totals['subtotal']:.2f} iva={totals['iva']:.2f} total={totals['total']:.2f}",
            "recompute_factura_totals"
        )
        return updated if isinstance(updated, dict) else {**factura, **payload}

    except TotalsRecomputeError:
        raise
    except Exception as e:
        raise TotalsRecomputeError(f"{prefix}: {str(e)}") from e


def _sync_totals(session, user_id, factura_id, detalle, success_message: str, done_message: str = "El detalle se guardó") -> Dict[str, Any]:
    """
    Segundo paso de cada operación: el cambio del detalle ya está confirmado.
    `done_message` describe ese cambio en el aviso de totales desactualizados.
    """
    try:
        factura = recompute_factura_totals(session, user_id, factura_id)
    except TotalsRecomputeError as e:
        log_error(str(e), "_sync_totals")
        return service_result(
            False,
            f"{done_message}, pero los totales de la factura quedaron desactualizados. {e}",
            {"detalle": detalle, "factura_id": factura_id},
            stale_totals=True,
            fatal=e.fatal,
            status_code=502
        )
    return service_result(True, success_message, {"detalle": detalle, "factura": factura})


def build_detalle_payload(data: Dict[str, Any], **extra) -> Dict[str, Any]:
    """Agrega los campos derivados (siempre recalculados) a un detalle validado"""
    derived = compute_line_item(data['cantidad'], data['precio_unitario'], data['aplica_iva'])
    payload = {**data, **derived}
    payload.update(extra)
    return payload


def post_detalle(session, user_id, data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Crea un detalle ya validado. Devuelve (detalle_creado, error)."""
    payload = build_detalle_payload(data, usuario_creacion=user_id)
    response, error = make_compras_request(
        session=session,
        method="POST",
        endpoint=DETALLES_ENDPOINT,
        data=payload,
        operation_name=f"Create detalle en factura {data['factura_id']}",
        error_message="Error al crear el detalle."
    )
    if error:
        return None, error
    created = parse_json_response(response)
    return (created if isinstance(created, dict) else payload), None


def _validation_result(errors) -> Dict[str, Any]:
    return service_result(False, format_validation_errors(errors), errors=errors, status_code=400)


def add_detalle(session, user_id, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Valida, crea el detalle y recalcula los totales de su factura"""
    try:
        data, errors = validate_detalle(raw)
        if errors:
            return _validation_result(errors)

        created, error = post_detalle(session, user_id, data)
        if error:
            return _error_result(error)

        return _sync_totals(session, user_id, data['factura_id'], created, "Detalle añadido con éxito.")
    except Exception as e:
        log_error(str(e), "add_detalle")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)


def update_detalle(session, user_id, detalle_id, raw: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Modifica un detalle y recalcula los totales de su factura.

    La factura, el producto y el nombre del producto se toman del detalle
    guardado (`current`, o se busca si no se pasa): no cambian después del
    alta. Pedir otra factura se rechaza con 409.
    """
    try:
        if current is None:
            current, error = fetch_detalle(session, detalle_id)
            if error:
                return _error_result(error)

        raw = dict(raw or {})
        requested_factura = raw.get('factura_id')
        if requested_factura not in (None, '') and not same_id(requested_factura, current.get('factura_id')):
            return service_result(False, "Un detalle no se puede mover a otra factura.", status_code=409)

        for field in ('factura_id', 'producto_id', 'nombre_producto'):
            if current.get(field) not in (None, ''):
                raw[field] = current[field]

        data, errors = validate_detalle(raw)
        if errors:
            return _validation_result(errors)

        payload = build_detalle_payload(data, usuario_modificacion=user_id)
        response, error = make_compras_request(
            session=session,
            method="PUT",
            endpoint=f"{DETALLES_ENDPOINT}/{detalle_id}",
            data=payload,
            operation_name=f"Update detalle {detalle_id}",
            error_message="Error al actualizar el detalle."
        )
        if error:
            return _error_result(error)

        updated = parse_json_response(response)
        if not isinstance(updated, dict):
            updated = {"id": detalle_id, **payload}

        return _sync_totals(session, user_id, data['factura_id'], updated, "Detalle actualizado con éxito.")
    except Exception as e:
        log_error(str(e), "update_detalle")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)


def delete_detalle(session, user_id, detalle_id, factura_id) -> Dict[str, Any]:
    """Elimina un detalle y recalcula los totales de la factura"""
    try:
        response, error = make_compras_request(
            session=session,
            method="DELETE",
            endpoint=f"{DETALLES_ENDPOINT}/{detalle_id}",
            operation_name=f"Delete detalle {detalle_id}",
            error_message="Error al eliminar el detalle."
        )
        if error:
            return _error_result(error)

        return _sync_totals(
            session, user_id, factura_id, {"id": detalle_id},
            "Detalle eliminado con éxito.",
            done_message="El detalle se eliminó"
        )
    except Exception as e:
        log_error(str(e), "delete_detalle")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)
