from flask import Flask, request, jsonify
from flask_cors import CORS
import requests
import os
import logging

# Importar utilidades HTTP
from utils.http_utils import make_compras_request, parse_json_response

# Importar configuración
from config import COMPRAS_API_URL, MODULO_ID, SEGURIDAD_API_URL

# Importar los blueprints de rutas
from routes.proveedores import proveedores_bp
from routes.facturas import facturas_bp
from routes.detalles_factura import detalles_factura_bp
from routes.productos import productos_bp
from routes.auditoria import auditoria_bp
from routes.reports.saldos_reports import saldos_reports_bp

# Inicializa la aplicación Flask
app = Flask(__name__)
# Avoid automatic redirect when trailing slashes differ between request and route.
# This prevents browsers from receiving a 301/308 redirect for preflight OPTIONS requests
# which causes CORS failures: "Redirect is not allowed for a preflight request".
app.url_map.strict_slashes = False
# Los mensajes van en español: no escapar acentos en las respuestas JSON
app.json.ensure_ascii = False

# Configurar logging para reducir logs de werkzeug
logging.getLogger('werkzeug').setLevel(logging.WARNING)
app.logger.setLevel(logging.WARNING)

# Registrar los blueprints ANTES de configurar CORS
app.register_blueprint(proveedores_bp)
app.register_blueprint(facturas_bp)
app.register_blueprint(detalles_factura_bp)
app.register_blueprint(productos_bp)
app.register_blueprint(auditoria_bp)
app.register_blueprint(saldos_reports_bp)

# Configurar CORS basado en el ambiente
# Lee la variable de entorno. Si no existe, usa localhost:9002 para desarrollo.
allowed_origins = os.getenv('FLASK_CORS_ORIGINS', 'http://localhost:9002,http://localhost:3000')
print(f"CORS - Orígenes permitidos leídos de ENV: {allowed_origins}")

cors_options = {
    "supports_credentials": True,
    "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    "allow_headers": ["Content-Type", "Authorization", "X-Session-Token", "X-User-Id", "X-Requested-With"],
    "expose_headers": ["Content-Type", "Content-Disposition"],
}

# Configura CORS. Si allowed_origins tiene una sola URL, pasala como string.
# Si tiene varias separadas por coma, pasalas como lista.
if ',' in allowed_origins:
    origins_list = [origin.strip() for origin in allowed_origins.split(',')]
    CORS(app, origins=origins_list, **cors_options)
    print(f"CORS configurado para MÚLTIPLES orígenes: {origins_list}")
else:
    CORS(app, origins=allowed_origins, **cors_options)
    print(f"CORS configurado para UN origen: {allowed_origins}")


# Ruta de login: se valida contra la aplicación de seguridad
@app.route('/api/login', methods=['POST'])
def login():
    print("\n--- Petición de login recibida (/api/login) ---")

    data = request.get_json(silent=True) or {}
    usuario = str(data.get('usuario') or '').strip()
    contrasena = data.get('contrasena') or ''

    if not usuario or not contrasena:
        print("Error: Usuario o contraseña faltante en la petición.")
        return jsonify({"success": False, "message": "Datos de formulario no válidos."}), 400

    response, error_response = make_compras_request(
        session=requests.Session(),
        method="POST",
        endpoint="/usuarios/login",
        data={"usuario": usuario, "contrasena": contrasena, "id_modulo": MODULO_ID},
        operation_name="Login",
        error_message="Credenciales incorrectas o usuario no autorizado.",
        base_url=SEGURIDAD_API_URL
    )

    if error_response:
        status = error_response.get('status_code', 500)
        # Un 5xx o un error de conexión no es un problema de credenciales
        if status >= 500:
            return jsonify({"success": False, "message": error_response.get('message')}), 502
        return jsonify({"success": False, "message": error_response.get('message')}), 401

    login_data = parse_json_response(response, {})
    if not isinstance(login_data, dict) or not login_data.get('token'):
        print("Error: Login exitoso pero la respuesta no trae token.")
        return jsonify({"success": False, "message": "No se pudo obtener el token de sesión"}), 502

    print(f"Token de sesión obtenido exitosamente para '{usuario}'")
    return jsonify({"success": True, "message": "Inicio de sesión exitoso.", "data": login_data})


# Inicia el servidor
if __name__ == '__main__':
    if not COMPRAS_API_URL:
        print("Error: La variable de entorno COMPRAS_API_URL no está definida. Por favor, asegúrate de que esté configurada.")
    else:
        # Usar host 0.0.0.0 para aceptar conexiones externas dentro de Docker
        app.run(host="0.0.0.0", port=int(os.getenv('PORT', '5000')), debug=os.getenv('DEBUG', 'False').lower() in ['true', '1', 'yes'])
