from flask import Blueprint, request, jsonify
from urllib.parse import quote

# Importar función de autenticación centralizada
from routes.auth_utils import get_session_with_auth

# Importar utilidades HTTP centralizadas
from utils.http_utils import make_compras_request, handle_compras_error, parse_json_response
from utils.logging_utils import log_warning
from utils.validation_utils import validate_proveedor, format_validation_errors

# Crear el blueprint para las rutas de proveedores
proveedores_bp = Blueprint('proveedores', __name__)

EPOCH_ISO = "1970-01-01T00:00:00.000Z"


def fetch_proveedores(session):
    """Lista de proveedores normalizada. Devuelve (proveedores, error)"""
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint="/proveedores",
        operation_name="Get proveedores",
        error_message="Error al obtener los proveedores."
    )
    if error:
        return [], error

    proveedores = parse_json_response(response, [])
    if not isinstance(proveedores, list):
        log_warning(f"La respuesta de proveedores no es una lista: {proveedores}", "fetch_proveedores")
        return [], None

    # fecha_creacion siempre presente para poder ordenar por fecha de alta
    return [
        {**p, "fecha_creacion": p.get('fecha_creacion') or EPOCH_ISO}
        for p in proveedores if isinstance(p, dict)
    ], None


def fetch_proveedor(session, cedula_ruc):
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint=f"/proveedores/{quote(str(cedula_ruc))}",
        operation_name=f"Get proveedor {cedula_ruc}",
        error_message="Error al obtener el proveedor."
    )
    if error:
        return None, error
    proveedor = parse_json_response(response)
    if not isinstance(proveedor, dict):
        return None, {"success": False, "message": "Proveedor no encontrado", "status_code": 404}
    return proveedor, None


@proveedores_bp.route('/api/proveedores', methods=['GET'])
def get_proveedores():
    """Obtener la lista de proveedores (los más recientes primero)"""
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    proveedores, error = fetch_proveedores(session)
    if error:
        return handle_compras_error(error, "Error al obtener los proveedores.")

    proveedores.sort(key=lambda p: str(p.get('fecha_creacion') or ''), reverse=True)
    return jsonify({"success": True, "data": proveedores})


@proveedores_bp.route('/api/proveedores/<cedula_ruc>', methods=['GET'])
def get_proveedor(cedula_ruc):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    proveedor, error = fetch_proveedor(session, cedula_ruc)
    if error:
        return handle_compras_error(error, "Error al obtener el proveedor.")
    return jsonify({"success": True, "data": proveedor})


@proveedores_bp.route('/api/proveedores', methods=['POST'])
def create_proveedor():
    """Crear un nuevo proveedor"""
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    data, errors = validate_proveedor(request.get_json(silent=True) or {})
    if errors:
        return jsonify({"success": False, "message": format_validation_errors(errors), "errors": errors}), 400

    response, error = make_compras_request(
        session=session,
        method="POST",
        endpoint="/proveedores",
        data={**data, "usuario_creacion": user_id},
        operation_name=f"Create proveedor {data['cedula_ruc']}",
        error_message="Error al crear el proveedor."
    )
    if error:
        return handle_compras_error(error, "Error al crear el proveedor.")

    created = parse_json_response(response) or data
    return jsonify({"success": True, "message": "Proveedor añadido con éxito.", "data": created}), 201


@proveedores_bp.route('/api/proveedores/<cedula_ruc>', methods=['PUT'])
def update_proveedor(cedula_ruc):
    """Actualizar un proveedor existente. La cédula/RUC es la clave y no cambia."""
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    raw = request.get_json(silent=True) or {}
    data, errors = validate_proveedor({**raw, "cedula_ruc": cedula_ruc})
    if errors:
        return jsonify({"success": False, "message": format_validation_errors(errors), "errors": errors}), 400

    response, error = make_compras_request(
        session=session,
        method="PUT",
        endpoint=f"/proveedores/{quote(cedula_ruc)}",
        data={**data, "usuario_modificacion": user_id},
        operation_name=f"Update proveedor {cedula_ruc}",
        error_message="Error al actualizar el proveedor."
    )
    if error:
        return handle_compras_error(error, "Error al actualizar el proveedor.")

    updated = parse_json_response(response) or data
    return jsonify({"success": True, "message": "Proveedor actualizado con éxito.", "data": updated})


@proveedores_bp.route('/api/proveedores/<cedula_ruc>', methods=['DELETE'])
def delete_proveedor(cedula_ruc):
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    response, error = make_compras_request(
        session=session,
        method="DELETE",
        endpoint=f"/proveedores/{quote(cedula_ruc)}",
        operation_name=f"Delete proveedor {cedula_ruc}",
        error_message="Error al eliminar el proveedor."
    )
    if error:
        return handle_compras_error(error, "Error al eliminar el proveedor.")

    return jsonify({"success": True, "message": "Proveedor eliminado con éxito."})
