from flask import Blueprint, request, jsonify

from routes.auth_utils import get_session_with_auth
from routes.proveedores import fetch_proveedor
from services.facturas_service import (
    cancel_factura,
    create_factura,
    create_factura_with_detalles,
    fetch_factura,
    fetch_facturas,
    print_factura,
    update_factura,
)
from utils.factura_utils import is_modification_disabled
from utils.http_utils import handle_compras_error, service_result_response

facturas_bp = Blueprint('facturas', __name__)

PROVEEDOR_DESCONOCIDO = "Desconocido"


@facturas_bp.route('/api/facturas', methods=['GET'])
def get_facturas():
    """Lista de facturas con montos numéricos. Filtros opcionales: estado, proveedor"""
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    facturas, error = fetch_facturas(session)
    if error:
        return handle_compras_error(error, "Error al obtener las facturas.")

    estado = request.args.get('estado')
    proveedor = request.args.get('proveedor')
    if estado:
        facturas = [f for f in facturas if f.get('estado') == estado]
    if proveedor:
        facturas = [f for f in facturas if str(f.get('proveedor_cedula_ruc') or '') == proveedor]

    return jsonify({"success": True, "data": facturas})


@facturas_bp.route('/api/facturas/<int:factura_id>', methods=['GET'])
def get_factura(factura_id):
    """Cabecera de la factura con el nombre del proveedor resuelto"""
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    factura, error = fetch_factura(session, factura_id)
    if error:
        return handle_compras_error(error, "Error al obtener la factura.")

    nombre_proveedor = PROVEEDOR_DESCONOCIDO
    if factura.get('proveedor_cedula_ruc'):
        proveedor, proveedor_error = fetch_proveedor(session, factura['proveedor_cedula_ruc'])
        if not proveedor_error and proveedor.get('nombre'):
            nombre_proveedor = proveedor['nombre']

    return jsonify({
        "success": True,
        "data": {
            **factura,
            "nombre_proveedor": nombre_proveedor,
            "modificacion_bloqueada": is_modification_disabled(factura),
        }
    })


@facturas_bp.route('/api/facturas', methods=['POST'])
def post_factura():
    """
    Crear una factura. Si el body trae 'detalles', se crean junto con la
    cabecera y se recalculan los totales.
    """
    print("\n--- Petición de alta de factura recibida ---")
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    data = request.get_json(silent=True) or {}
    detalles = data.pop('detalles', None)

    if detalles is not None:
        if not isinstance(detalles, list):
            return jsonify({"success": False, "message": "'detalles' debe ser una lista"}), 400
        result = create_factura_with_detalles(session, user_id, data, detalles)
    else:
        result = create_factura(session, user_id, data)

    return service_result_response(result, success_status=201)


@facturas_bp.route('/api/facturas/<int:factura_id>', methods=['PUT'])
def put_factura(factura_id):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    factura, error = fetch_factura(session, factura_id)
    if error:
        return handle_compras_error(error, "Error al obtener la factura.")
    if is_modification_disabled(factura):
        return jsonify({
            "success": False,
            "message": f"La factura está {factura.get('estado')} y no se puede modificar."
        }), 409

    result = update_factura(session, user_id, factura_id, request.get_json(silent=True) or {})
    return service_result_response(result)


@facturas_bp.route('/api/facturas/<int:factura_id>/cancelar', methods=['POST'])
def post_cancelar_factura(factura_id):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    result = cancel_factura(session, user_id, factura_id)
    return service_result_response(result)


@facturas_bp.route('/api/facturas/<int:factura_id>/imprimir', methods=['POST'])
def post_imprimir_factura(factura_id):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    result = print_factura(session, user_id, factura_id)
    return service_result_response(result)
