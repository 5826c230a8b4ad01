"""
Utilidades de autenticación centralizadas para evitar duplicación
"""

from flask import request, jsonify
import requests


def _read_token():
    token = request.headers.get('X-Session-Token')
    if token:
        return token.strip()
    authorization = request.headers.get('Authorization') or ''
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def get_session_with_auth():
    """
    Helper function centralizada para crear una sesión con autenticación

    El token es el que devolvió la aplicación de seguridad en /api/login y
    el usuario (X-User-Id) es el que queda registrado como
    usuario_creacion / usuario_modificacion en cada cambio.

    Returns:
        tuple: (session, headers, user_id, error_response)
               Si hay error, error_response será una tupla (response, status_code)
               Si todo está bien, error_response será None
    """
    token = _read_token()
    if not token:
        return None, None, None, (jsonify({"success": False, "message": "Sesión no encontrada"}), 401)

    raw_user_id = (request.headers.get('X-User-Id') or '').strip()
    try:
        user_id = int(raw_user_id)
    except ValueError:
        user_id = None
    if not user_id or user_id < 1:
        return None, None, None, (jsonify({"success": False, "message": "Usuario no identificado"}), 401)

    headers = {"Authorization": f"Bearer {token}"}
    session = requests.Session()
    session.headers.update(headers)

    return session, headers, user_id, None
