from flask import Blueprint, jsonify

from config import PRODUCTOS_API_URL
from routes.auth_utils import get_session_with_auth
from utils.http_utils import make_compras_request, handle_compras_error, parse_json_response
from utils.logging_utils import log_warning

productos_bp = Blueprint('productos', __name__)

PRODUCTO_NO_ENCONTRADO = "Producto no encontrado"


def normalize_producto(producto):
    """El catálogo publica el precio como 'pvp'; el resto del backend usa precio_unitario"""
    precio = producto.get('pvp')
    if precio is None:
        precio = producto.get('precio_unitario')
    return {
        **producto,
        "precio_unitario": str(precio if precio is not None else "0.00"),
        "descripcion": producto.get('descripcion'),
        "id_categoria": producto.get('id_categoria') or 0,
    }


def fetch_productos(session):
    """Catálogo de productos. Devuelve (productos, error)"""
    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint="/productos",
        operation_name="Get catálogo de productos",
        error_message="Error al obtener los productos.",
        base_url=PRODUCTOS_API_URL
    )
    if error:
        return [], error

    payload = parse_json_response(response, [])
    # El catálogo responde {"productos": [...]} o directamente la lista
    if isinstance(payload, dict) and isinstance(payload.get('productos'), list):
        productos = payload['productos']
    elif isinstance(payload, list):
        productos = payload
    else:
        log_warning(f"Respuesta inesperada del catálogo: {type(payload).__name__}", "fetch_productos")
        return [], None

    return [normalize_producto(p) for p in productos if isinstance(p, dict)], None


def build_producto_name_map(productos):
    return {str(p.get('id_producto')): p.get('nombre') for p in productos if p.get('id_producto') is not None}


@productos_bp.route('/api/productos', methods=['GET'])
def get_productos():
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    productos, error = fetch_productos(session)
    if error:
        return handle_compras_error(error, "Error al obtener los productos.")
    return jsonify({"success": True, "data": productos})
