import json

from flask import Blueprint, request, jsonify

from config import AUDITORIA_MODULO, SEGURIDAD_API_URL
from routes.auth_utils import get_session_with_auth
from utils.http_utils import make_compras_request, handle_compras_error, parse_json_response
from utils.logging_utils import log_warning

auditoria_bp = Blueprint('auditoria', __name__)

# La aplicación de seguridad registra la acción en español o con el verbo SQL
ACCION_ALIASES = {
    "INSERT": "CREACIÓN",
    "SELECT": "CONSULTA",
    "UPDATE": "ACTUALIZACIÓN",
    "DELETE": "ELIMINACIÓN",
}


def normalize_accion(accion):
    value = str(accion or '').strip().upper()
    return ACCION_ALIASES.get(value, value)


def format_details(details):
    """Resumen legible del campo 'details' de un log de auditoría"""
    if not details:
        return "N/A"
    if not isinstance(details, dict):
        return str(details)

    if details.get('tipo'):
        return details['tipo']

    antes = details.get('antes')
    despues = details.get('despues')
    if isinstance(antes, dict) and isinstance(despues, dict):
        changes = [
            f"{key}: '{antes.get(key)}' -> '{despues.get(key)}'"
            for key in despues
            if antes.get(key) != despues.get(key)
        ]
        return f"Cambios: {'; '.join(changes) or 'Sin cambios detectados.'}"

    if details.get('nuevo'):
        return f"Nuevo registro: {json.dumps(details['nuevo'], ensure_ascii=False, default=str)}"

    if details.get('eliminado'):
        return f"Registro eliminado: {json.dumps(details['eliminado'], ensure_ascii=False, default=str)}"

    return json.dumps(details, indent=2, ensure_ascii=False, default=str)


def filter_logs_by_modulo(logs, modulo):
    modulo = (modulo or '').lower()
    return [log for log in logs if isinstance(log, dict) and str(log.get('modulo') or '').lower() == modulo]


@auditoria_bp.route('/api/auditoria', methods=['GET'])
def get_auditoria():
    """
    Logs de auditoría del módulo de compras, los más recientes primero.
    Filtros opcionales: accion (CREACIÓN, ACTUALIZACIÓN, ...) y q (texto libre).
    """
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    response, error = make_compras_request(
        session=session,
        method="GET",
        endpoint="/auditoria",
        operation_name="Get auditoria",
        error_message="Error al obtener los registros de auditoría.",
        base_url=SEGURIDAD_API_URL
    )
    if error:
        return handle_compras_error(error, "Error al obtener los registros de auditoría.")

    logs = parse_json_response(response, [])
    if not isinstance(logs, list):
        log_warning("La respuesta de auditoría no es una lista", "get_auditoria")
        logs = []

    logs = [
        {**log, "details_string": format_details(log.get('details'))}
        for log in filter_logs_by_modulo(logs, AUDITORIA_MODULO)
    ]

    accion = request.args.get('accion')
    if accion:
        accion = normalize_accion(accion)
        logs = [log for log in logs if normalize_accion(log.get('accion')) == accion]

    query = (request.args.get('q') or '').strip().lower()
    if query:
        logs = [
            log for log in logs
            if query in str(log.get('accion') or '').lower()
            or query in str(log.get('tabla') or '').lower()
            or query in str(log.get('nombre_rol') or '').lower()
            or query in log['details_string'].lower()
        ]

    logs.sort(key=lambda log: str(log.get('timestamp') or ''), reverse=True)
    return jsonify({"success": True, "data": logs})
