from flask import Blueprint, request, jsonify

from routes.auth_utils import get_session_with_auth
from routes.productos import PRODUCTO_NO_ENCONTRADO, build_producto_name_map, fetch_productos
from services.facturas_service import fetch_factura
from services.invoice_totals_service import (
    DETALLES_ENDPOINT,
    add_detalle,
    delete_detalle,
    fetch_detalle,
    fetch_detalles_factura,
    update_detalle,
)
from utils.factura_utils import is_modification_disabled, normalize_detalle
from utils.http_utils import handle_compras_error, make_compras_request, parse_json_response, service_result_response
from utils.logging_utils import log_warning
from utils.totals import compute_invoice_totals, compute_line_item
from utils.validation_utils import PRODUCTO_DESCONOCIDO, format_validation_errors, validate_detalle

detalles_factura_bp = Blueprint('detalles_factura', __name__)


def _check_factura_editable(session, factura_id):
    """
    Devuelve (factura, error_response). Los detalles de una factura Impresa o
    Cancelada no se pueden agregar, modificar ni eliminar.
    """
    factura, error = fetch_factura(session, factura_id)
    if error:
        return None, handle_compras_error(error, "Error al obtener la factura.")
    if is_modification_disabled(factura):
        return factura, (jsonify({
            "success": False,
            "message": f"La factura está {factura.get('estado')}: no se pueden modificar sus detalles."
        }), 409)
    return factura, None


def _resolve_nombre_producto(session, producto_id):
    productos, error = fetch_productos(session)
    if error:
        log_warning(f"No se pudo consultar el catálogo: {error.get('message')}", "_resolve_nombre_producto")
        return PRODUCTO_DESCONOCIDO
    return build_producto_name_map(productos).get(str(producto_id)) or PRODUCTO_DESCONOCIDO


@detalles_factura_bp.route('/api/detalles-factura', methods=['GET'])
def get_detalles_factura():
    """
    Con ?factura_id=N devuelve los detalles de esa factura con el nombre de
    cada producto y el resumen de totales calculado desde los detalles.
    """
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    factura_id = request.args.get('factura_id', type=int)
    if factura_id is None:
        response, error = make_compras_request(
            session=session,
            method="GET",
            endpoint=DETALLES_ENDPOINT,
            operation_name="Get detalles-factura",
            error_message="Error al obtener los detalles de factura."
        )
        if error:
            return handle_compras_error(error, "Error al obtener los detalles de factura.")
        detalles = parse_json_response(response, [])
        if not isinstance(detalles, list):
            detalles = []
        return jsonify({"success": True, "data": [normalize_detalle(d) for d in detalles]})

    detalles, error = fetch_detalles_factura(session, factura_id)
    if error:
        return handle_compras_error(error, "Error al obtener los detalles de factura.")

    productos, productos_error = fetch_productos(session)
    if productos_error:
        log_warning(f"Catálogo no disponible: {productos_error.get('message')}", "get_detalles_factura")
    nombres = build_producto_name_map(productos)

    detalles = [
        {**d, "nombre_producto": nombres.get(str(d.get('producto_id'))) or d.get('nombre_producto') or PRODUCTO_NO_ENCONTRADO}
        for d in detalles
    ]

    return jsonify({
        "success": True,
        "data": detalles,
        "resumen": compute_invoice_totals(detalles)
    })


@detalles_factura_bp.route('/api/detalles-factura/preview', methods=['POST'])
def preview_detalle():
    """Vista previa de subtotal/IVA/total de un detalle, sin guardar nada"""
    raw = request.get_json(silent=True) or {}
    data, errors = validate_detalle(
        {**raw, "nombre_producto": raw.get('nombre_producto') or "-"},
        require_factura=False
    )
    errors.pop('producto_id', None)
    if errors:
        return jsonify({"success": False, "message": format_validation_errors(errors), "errors": errors}), 400

    return jsonify({
        "success": True,
        "data": compute_line_item(data['cantidad'], data['precio_unitario'], data['aplica_iva'])
    })


@detalles_factura_bp.route('/api/detalles-factura', methods=['POST'])
def post_detalle_factura():
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    raw = request.get_json(silent=True) or {}
    data, errors = validate_detalle({**raw, "nombre_producto": raw.get('nombre_producto') or "-"})
    if errors:
        return jsonify({"success": False, "message": format_validation_errors(errors), "errors": errors}), 400

    factura, guard_response = _check_factura_editable(session, data['factura_id'])
    if guard_response:
        return guard_response

    if not raw.get('nombre_producto'):
        raw = {**raw, "nombre_producto": _resolve_nombre_producto(session, data['producto_id'])}

    result = add_detalle(session, user_id, raw)
    return service_result_response(result, success_status=201)


@detalles_factura_bp.route('/api/detalles-factura/<int:detalle_id>', methods=['PUT'])
def put_detalle_factura(detalle_id):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    current, error = fetch_detalle(session, detalle_id)
    if error:
        return handle_compras_error(error, "Error al obtener el detalle.")

    factura, guard_response = _check_factura_editable(session, current.get('factura_id'))
    if guard_response:
        return guard_response

    result = update_detalle(session, user_id, detalle_id, request.get_json(silent=True) or {}, current=current)
    return service_result_response(result)


@detalles_factura_bp.route('/api/detalles-factura/<int:detalle_id>', methods=['DELETE'])
def delete_detalle_factura(detalle_id):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    current, error = fetch_detalle(session, detalle_id)
    if error:
        return handle_compras_error(error, "Error al obtener el detalle.")

    factura, guard_response = _check_factura_editable(session, current.get('factura_id'))
    if guard_response:
        return guard_response

    result = delete_detalle(session, user_id, detalle_id, current.get('factura_id'))
    return service_result_response(result)
