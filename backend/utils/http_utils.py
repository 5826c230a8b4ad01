# http_utils.py - Llamadas a las APIs remotas (Compras, catálogo de productos, seguridad)
# y conversión de sus errores en respuestas Flask

import requests
import json
import re
import html
import os
from flask import jsonify
from typing import Dict, Any, Optional, Tuple
from config import COMPRAS_API_URL, REQUEST_TIMEOUT
from urllib.parse import unquote

MAX_ERROR_BODY_LENGTH = 500


def is_detailed_logging_enabled(operation_name: str = "") -> bool:
    # Las consultas de auditoría devuelven miles de registros: no volcarlos nunca
    if "auditoria" in operation_name.lower():
        return False

    return os.getenv('LOG_DETALLADO', 'false').lower() in ('true', '1', 'yes', 'on')


def clean_html_message(raw_text) -> str:
    """Texto plano de un mensaje que puede venir como página de error HTML"""
    if raw_text is None:
        return ''
    text = unquote(html.unescape(str(raw_text)))
    text = re.sub(r'<[^>]+>', ' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def extract_error_message(response: requests.Response, default_message: str) -> str:
    """
    Obtiene el mensaje de error de una respuesta no exitosa.

    Orden: campo 'error' (si es texto) -> campo 'message' del JSON ->
    texto crudo del body -> mensaje por defecto.
    """
    try:
        error_body = response.json()
    except ValueError:
        error_body = None

    if isinstance(error_body, dict):
        if isinstance(error_body.get('error'), str) and error_body['error'].strip():
            return clean_html_message(error_body['error'])
        if error_body.get('message'):
            return clean_html_message(error_body['message'])

    raw_text = clean_html_message(response.text or '')
    if raw_text:
        return raw_text[:MAX_ERROR_BODY_LENGTH]
    return default_message


def parse_json_response(response: Optional[requests.Response], default=None):
    """Devuelve el JSON de la respuesta, o `default` si el body está vacío o no es JSON"""
    if response is None:
        return default
    text = response.text
    if not text or not text.strip():
        return default
    try:
        return json.loads(text)
    except ValueError:
        return default


def make_compras_request(
    session: requests.Session,
    method: str,
    endpoint: str,
    data: Optional[Any] = None,
    params: Optional[Dict[str, Any]] = None,
    custom_headers: Optional[Dict[str, str]] = None,
    operation_name: str = "Operación Compras",
    error_message: Optional[str] = None,
    base_url: Optional[str] = None
) -> Tuple[Optional[requests.Response], Optional[Dict[str, Any]]]:
    """
    Única puerta de salida hacia las APIs remotas (Compras, catálogo y
    seguridad). Nunca lanza por errores HTTP o de red: devuelve
    (response, None) con 2xx y (None, error_response) en cualquier otro caso,
    con error_response = {success, message, status_code, response_body?}.

    `base_url` por defecto es COMPRAS_API_URL; `error_message` se usa cuando
    la respuesta de error no trae un mensaje propio.
    """
    method = method.upper()
    url = f"{base_url or COMPRAS_API_URL}{endpoint}"
    detailed = is_detailed_logging_enabled(operation_name)

    request_kwargs = {
        'headers': {"Accept": "application/json", "Content-Type": "application/json", **(custom_headers or {})},
        'timeout': REQUEST_TIMEOUT
    }
    if params:
        request_kwargs['params'] = params
    if data is not None and method in ('POST', 'PUT'):
        request_kwargs['json'] = data

    senders = {
        'GET': session.get,
        'POST': session.post,
        'PUT': session.put,
        'DELETE': session.delete,
    }
    if method not in senders:
        return None, {
            "success": False,
            "message": f"Método HTTP no soportado: {method}",
            "status_code": 400
        }

    try:
        # Nunca volcar los headers: llevan el token de sesión
        if detailed:
            print(f"📤 {method} {url}")
            if 'json' in request_kwargs:
                print(f"📤 Body: {json.dumps(data, indent=2, default=str, ensure_ascii=False)}")
            if params:
                print(f"📤 Query: {params}")

        response = senders[method](url, **request_kwargs)

        print(f"📡 {operation_name}: respuesta {response.status_code}")
        if detailed:
            print(f"📥 {(response.text or '')[:1000]}")

        # Cualquier respuesta fuera de 2xx es un error
        if response.status_code < 200 or response.status_code >= 300:
            message = extract_error_message(
                response,
                error_message or f"Error HTTP {response.status_code}"
            )
            print(f"❌ {operation_name} falló: {message}")
            return None, {
                "success": False,
                "message": message,
                "status_code": response.status_code,
                "response_body": (response.text or '')[:MAX_ERROR_BODY_LENGTH]
            }

        print(f"✅ {operation_name} completada exitosamente")
        return response, None

    except requests.exceptions.RequestException as e:
        print(f"❌ Error de conexión en {operation_name}: {e}")
        return None, {
            "success": False,
            "message": f"Error de conexión con el servidor: {str(e)}",
            "status_code": 503
        }


STATUS_MESSAGES = {
    401: "Sesión expirada o credenciales inválidas",
    403: "No tienes permisos para realizar esta operación",
    404: "Recurso no encontrado",
    409: "Conflicto - el registro ya existe",
    422: "Datos inválidos - verifica la información enviada",
}
SERVER_ERROR_MESSAGE = "Error interno del servidor de Compras"


def handle_compras_error(error_response: Dict[str, Any], default_message: str = "Error en operación de Compras") -> Tuple[Any, int]:
    """
    Convierte un error_response de make_compras_request en (jsonify, status).
    Si la API remota no dio un mensaje propio se usa uno según el status.
    """
    status_code = error_response.get('status_code', 500)
    message = error_response.get('message') or default_message

    # Redirecciones u otros códigos no-error de la API remota se informan como gateway inválido
    if status_code < 400:
        status_code = 502

    if message == default_message:
        if status_code >= 500:
            message = SERVER_ERROR_MESSAGE
        else:
            message = STATUS_MESSAGES.get(status_code, message)

    json_response = jsonify({"success": False, "message": clean_html_message(message)})
    return json_response, status_code


def service_result_response(result: Dict[str, Any], success_status: int = 200) -> Tuple[Any, int]:
    """Convierte el resultado {success, message, data?} de un servicio en respuesta Flask"""
    body = {k: v for k, v in result.items() if k != 'status_code'}
    if result.get('success'):
        return jsonify(body), success_status
    return jsonify(body), result.get('status_code', 400)


def service_result(success: bool, message: str, data: Optional[Any] = None, **extra) -> Dict[str, Any]:
    """Resultado {success, message, data?, ...} que devuelven los servicios"""
    result = {"success": success, "message": message}
    if data is not None:
        result["data"] = data
    result.update(extra)
    return result
