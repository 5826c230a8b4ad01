"""
Operaciones sobre la cabecera de las facturas de compra.

La unicidad de (proveedor_cedula_ruc, numero_factura_proveedor) no la
garantiza la API: se verifica acá leyendo todas las facturas antes de crear
o modificar.
"""

import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import requests

from config import DETALLES_MAX_WORKERS
from services.invoice_totals_service import (
    FACTURAS_ENDPOINT,
    UNKNOWN_ERROR_MESSAGE,
    TotalsRecomputeError,
    post_detalle,
    recompute_factura_totals,
)
from utils.factura_utils import build_factura_payload, normalize_factura, same_id
from utils.http_utils import make_compras_request, parse_json_response, service_result
from utils.logging_utils import log_error, log_function_call, log_search_operation, log_warning
from utils.validation_utils import (
    ESTADO_CANCELADA,
    ESTADO_IMPRESA,
    format_validation_errors,
    validate_detalle,
)


def fetch_facturas(session) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint=FACTURAS_ENDPOINT,
        operation_name="Get facturas",
        error_message="Error al obtener las facturas."
    )
    if error:
        return [], error

    facturas = parse_json_response(response, [])
    if not isinstance(facturas, list):
        log_warning(f"La respuesta de facturas no es una lista: {facturas}", "fetch_facturas")
        return [], None
    return [normalize_factura(f) for f in facturas if isinstance(f, dict)], None


def fetch_factura(session, factura_id) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint=f"{FACTURAS_ENDPOINT}/{factura_id}",
        operation_name=f"Get factura {factura_id}",
        error_message="Error al obtener la factura."
    )
    if error:
        return None, error

    factura = parse_json_response(response)
    if not isinstance(factura, dict):
        return None, {"success": False, "message": "Factura no encontrada.", "status_code": 404}
    return normalize_factura(factura), None


def check_duplicate_factura(session, proveedor_cedula_ruc, numero_factura_proveedor, exclude_id=None) -> Optional[Dict[str, Any]]:
    """
    Devuelve None si no hay otra factura del mismo proveedor con el mismo
    número; si la hay (o no se pudo verificar) devuelve el resultado de error.
    Se revisan todas las facturas, sin importar su estado.
    """
    log_search_operation("Verificando factura duplicada", f"{proveedor_cedula_ruc} / {numero_factura_proveedor}")
    facturas, error = fetch_facturas(session)
    if error:
        return service_result(False, "Error al verificar facturas existentes.", status_code=502)

    for factura in facturas:
        if exclude_id is not None and same_id(factura.get('id'), exclude_id):
            continue
        if (str(factura.get('proveedor_cedula_ruc') or '').strip() == proveedor_cedula_ruc
                and str(factura.get('numero_factura_proveedor') or '').strip() == numero_factura_proveedor):
            if exclude_id is None:
                message = f'Ya existe una factura con el número "{numero_factura_proveedor}" para este proveedor.'
            else:
                message = f'Ya existe otra factura con el número "{numero_factura_proveedor}" para este proveedor.'
            return service_result(False, message, status_code=409)
    return None


def _temp_numero_factura() -> str:
    return f"TEMP-{int(time.time() * 1000)}"


def _post_factura(session, user_id, raw) -> Dict[str, Any]:
    """Valida, verifica duplicados y crea la cabecera con totales en cero"""
    header = {**raw, "subtotal": 0, "iva": 0, "total": 0}
    header.pop('numero_factura', None)
    payload, errors = build_factura_payload(
        header,
        numero_factura=_temp_numero_factura(),
        usuario_creacion=user_id
    )
    if errors:
        return service_result(False, format_validation_errors(errors), errors=errors, status_code=400)

    duplicate = check_duplicate_factura(session, payload['proveedor_cedula_ruc'], payload['numero_factura_proveedor'])
    if duplicate:
        return duplicate

    response, error = make_compras_request(
        session=session,
        method="POST",
        endpoint=FACTURAS_ENDPOINT,
        data=payload,
        operation_name=f"Create factura {payload['numero_factura_proveedor']}",
        error_message="Error al crear la factura."
    )
    if error:
        return service_result(False, error.get('message') or UNKNOWN_ERROR_MESSAGE, status_code=error.get('status_code', 500))

    created = parse_json_response(response)
    if not isinstance(created, dict):
        created = payload
    return service_result(True, "Factura creada con éxito.", normalize_factura(created))


def create_factura(session, user_id, raw: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return _post_factura(session, user_id, raw or {})
    except Exception as e:
        log_error(str(e), "create_factura")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)


def update_factura(session, user_id, factura_id, raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Modifica la cabecera. Los totales no se toman del cliente: se conservan
    los guardados, que solo cambian al recalcular desde los detalles. El
    estado tampoco: solo cambia con cancel_factura / print_factura.
    """
    try:
        current, error = fetch_factura(session, factura_id)
        if error:
            return service_result(False, error.get('message') or UNKNOWN_ERROR_MESSAGE, status_code=error.get('status_code', 500))

        header = dict(raw or {})
        for field in ('subtotal', 'iva', 'total', 'numero_factura', 'estado'):
            header[field] = current.get(field)

        payload, errors = build_factura_payload(header, usuario_modificacion=user_id)
        if errors:
            return service_result(False, format_validation_errors(errors), errors=errors, status_code=400)

        duplicate = check_duplicate_factura(
            session,
            payload['proveedor_cedula_ruc'],
            payload['numero_factura_proveedor'],
            exclude_id=factura_id
        )
        if duplicate:
            return duplicate

        response, error = make_compras_request(
            session=session,
            method="PUT",
            endpoint=f"{FACTURAS_ENDPOINT}/{factura_id}",
            data=payload,
            operation_name=f"Update factura {factura_id}",
            error_message="Error al actualizar la factura."
        )
        if error:
            return service_result(False, error.get('message') or UNKNOWN_ERROR_MESSAGE, status_code=error.get('status_code', 500))

        updated = parse_json_response(response)
        if not isinstance(updated, dict):
            updated = {**current, **payload}
        return service_result(True, "Factura actualizada con éxito.", normalize_factura(updated))
    except Exception as e:
        log_error(str(e), "update_factura")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)


def _change_estado(session, user_id, factura_id, current, nuevo_estado, put_error_message, success_message):
    payload, errors = build_factura_payload({**current, "estado": nuevo_estado}, usuario_modificacion=user_id)
    if errors:
        return service_result(
            False,
            "Los datos de la factura existente son inválidos. " + format_validation_errors(errors),
            errors=errors,
            status_code=422
        )

    response, error = make_compras_request(
        session=session,
        method="PUT",
        endpoint=f"{FACTURAS_ENDPOINT}/{factura_id}",
        data=payload,
        operation_name=f"Cambiar estado de factura {factura_id} a {nuevo_estado}",
        error_message=put_error_message
    )
    if error:
        return service_result(False, error.get('message') or put_error_message, status_code=error.get('status_code', 500))

    updated = parse_json_response(response)
    if not isinstance(updated, dict):
        updated = {**current, **payload}
    return service_result(True, success_message, normalize_factura(updated))


def cancel_factura(session, user_id, factura_id) -> Dict[str, Any]:
    """Cualquier factura no cancelada puede pasar a Cancelada"""
    try:
        current, error = fetch_factura(session, factura_id)
        if error:
            return service_result(
                False,
                error.get('message') or "Error al obtener los datos de la factura para cancelar.",
                status_code=error.get('status_code', 500)
            )
        if current.get('estado') == ESTADO_CANCELADA:
            return service_result(False, "La factura ya está cancelada.", status_code=409)

        return _change_estado(
            session, user_id, factura_id, current, ESTADO_CANCELADA,
            "Error al cancelar la factura.",
            "Factura cancelada con éxito."
        )
    except Exception as e:
        log_error(str(e), "cancel_factura")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)


def print_factura(session, user_id, factura_id) -> Dict[str, Any]:
    """Registrada -> Impresa. Reimprimir una factura Impresa no cambia nada."""
    try:
        current, error = fetch_factura(session, factura_id)
        if error:
            return service_result(
                False,
                error.get('message') or "Error al obtener los datos de la factura para imprimir.",
                status_code=error.get('status_code', 500)
            )
        estado = current.get('estado')
        if estado == ESTADO_CANCELADA:
            return service_result(False, "No se puede imprimir una factura cancelada.", status_code=409)
        if estado == ESTADO_IMPRESA:
            return service_result(True, "La factura ya está marcada como Impresa.", current)

        return _change_estado(
            session, user_id, factura_id, current, ESTADO_IMPRESA,
            "Error al cambiar el estado de la factura a Impresa.",
            "Factura marcada como Impresa."
        )
    except Exception as e:
        log_error(str(e), "print_factura")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)


def _worker_session(session):
    """Cada hilo usa su propia sesión con los mismos headers de autenticación"""
    worker = requests.Session()
    headers = getattr(session, 'headers', None)
    if headers:
        worker.headers.update(headers)
    return worker


def create_factura_with_detalles(session, user_id, raw: Dict[str, Any], detalles: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Alta completa: cabecera -> N detalles en paralelo -> recálculo de totales.

    Todos los detalles se validan antes de crear la cabecera. Si después
    alguno no se puede guardar, la cabecera y los detalles creados se
    conservan (no hay rollback) y el resultado informa cuáles fallaron.
    Los totales se recalculan siempre sobre lo que efectivamente se creó.
    """
    log_function_call("create_factura_with_detalles", minimal=True)
    try:
        validated = []
        line_errors = {}
        for index, detalle in enumerate(detalles or [], start=1):
            data, errors = validate_detalle(detalle, require_factura=False)
            if errors:
                line_errors[f"detalle {index}"] = [
                    f"{field}: {', '.join(messages)}" for field, messages in errors.items()
                ]
            validated.append(data)
        if line_errors:
            return service_result(False, format_validation_errors(line_errors), errors=line_errors, status_code=400)

        header_result = _post_factura(session, user_id, raw or {})
        if not header_result['success']:
            return header_result

        factura = header_result['data']
        factura_id = factura.get('id')
        if factura_id is None:
            return service_result(False, "La API no devolvió el id de la factura creada.", factura, status_code=502)

        if not validated:
            return header_result

        def create_one(data):
            worker = _worker_session(session)
            try:
                return post_detalle(worker, user_id, {**data, "factura_id": factura_id})
            except Exception as e:
                return None, {"success": False, "message": str(e) or UNKNOWN_ERROR_MESSAGE}
            finally:
                worker.close()

        with ThreadPoolExecutor(max_workers=max(1, DETALLES_MAX_WORKERS)) as executor:
            outcomes = list(executor.map(create_one, validated))

        creados = []
        fallidos = []
        for index, (data, (created, error)) in enumerate(zip(validated, outcomes), start=1):
            if error:
                fallidos.append({
                    "indice": index,
                    "producto_id": data.get('producto_id'),
                    "nombre_producto": data.get('nombre_producto'),
                    "message": error.get('message') or UNKNOWN_ERROR_MESSAGE,
                })
            else:
                creados.append(created)

        stale_totals = False
        recompute_message = ""
        try:
            factura = recompute_factura_totals(session, user_id, factura_id)
        except TotalsRecomputeError as e:
            log_error(str(e), "create_factura_with_detalles")
            stale_totals = True
            recompute_message = f" {e}"

        data = {"factura": normalize_factura(factura), "detalles_creados": creados, "detalles_fallidos": fallidos}

        if fallidos:
            log_warning(f"Factura {factura_id}: {len(fallidos)} de {len(validated)} detalles fallaron", "create_factura_with_detalles")
            message = (
                f"Factura creada con errores: {len(fallidos)} de {len(validated)} detalles "
                f"no se pudieron guardar.{recompute_message}"
            )
            return service_result(False, message, data, partial=True, stale_totals=stale_totals, status_code=207)

        if stale_totals:
            message = f"Factura y detalles creados, pero los totales quedaron desactualizados.{recompute_message}"
            return service_result(False, message, data, partial=True, stale_totals=True, status_code=502)

        return service_result(True, f"Factura creada con éxito con {len(creados)} detalles.", data)
    except Exception as e:
        log_error(str(e), "create_factura_with_detalles")
        print(f"Traceback: {traceback.format_exc()}")
        return service_result(False, str(e) or UNKNOWN_ERROR_MESSAGE, status_code=500)
