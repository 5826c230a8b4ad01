import importlib
import itertools
import json
import re
import threading

import pytest
import requests

from config import PRODUCTOS_API_URL, SEGURIDAD_API_URL

# Módulos que llaman a make_compras_request importándola por nombre
MODULES_WITH_REMOTE_CALLS = (
    "services.invoice_totals_service",
    "services.facturas_service",
    "routes.proveedores",
    "routes.productos",
    "routes.auditoria",
    "routes.detalles_factura",
    "app",
)

AUTH_HEADERS = {"X-Session-Token": "token-de-prueba", "X-User-Id": "7"}


def make_response(status_code, body=None):
    response = requests.Response()
    response.status_code = status_code
    response.encoding = 'utf-8'
    if body is not None:
        response._content = json.dumps(body).encode('utf-8')
        response.headers['Content-Type'] = 'application/json'
    else:
        response._content = b''
    return response


class FakeComprasApi:
    """
    API de Compras en memoria. Reemplaza a make_compras_request: recibe los
    mismos argumentos y devuelve (response, error_response).
    """

    def __init__(self):
        self.proveedores = {}
        self.facturas = {}
        self.detalles = {}
        self.productos = []
        self.auditoria = []
        self.login_response = None
        self.calls = []
        self._failures = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # --- datos iniciales ---

    def add_factura(self, **fields):
        factura = {
            "proveedor_cedula_ruc": "0912345678001",
            "numero_factura_proveedor": "001-001-000000001",
            "fecha_emision": "2024-05-10",
            "fecha_vencimiento": None,
            "estado": "Registrada",
            "tipo_pago": "Crédito",
            "numero_factura": "TEMP-1",
            "subtotal": "0.00",
            "iva": "0.00",
            "total": "0.00",
        }
        factura.update(fields)
        factura.setdefault('id', next(self._ids))
        self.facturas[factura['id']] = factura
        return factura

    def add_detalle(self, **fields):
        detalle = {
            "cantidad": 1,
            "precio_unitario": "10.00",
            "aplica_iva": False,
            "nombre_producto": "Producto",
            "subtotal": "10.00",
            "iva": "0.00",
            "total": "10.00",
        }
        detalle.update(fields)
        detalle.setdefault('id', next(self._ids))
        self.detalles[detalle['id']] = detalle
        return detalle

    def add_proveedor(self, **fields):
        proveedor = {
            "cedula_ruc": "0912345678001",
            "nombre": "Distribuidora Andina",
            "ciudad": "Quito",
            "tipo_proveedor": "Crédito",
            "direccion": "Av. Amazonas 123",
            "telefono": "022345678",
            "email": "ventas@andina.ec",
            "estado": True,
        }
        proveedor.update(fields)
        self.proveedores[proveedor['cedula_ruc']] = proveedor
        return proveedor

    # --- fallas simuladas ---

    def fail(self, method, endpoint_pattern, status_code=500, message="Error interno del servidor", times=None, when=None):
        """Hace fallar las llamadas que coincidan. times=None: siempre."""
        self._failures.append({
            "method": method.upper(),
            "pattern": endpoint_pattern,
            "status_code": status_code,
            "message": message,
            "remaining": times,
            "when": when,
        })

    def _match_failure(self, method, endpoint, data):
        for failure in self._failures:
            if failure['method'] != method or not re.fullmatch(failure['pattern'], endpoint):
                continue
            if failure['when'] is not None and not failure['when'](data):
                continue
            if failure['remaining'] is not None:
                if failure['remaining'] <= 0:
                    continue
                failure['remaining'] -= 1
            return {"success": False, "message": failure['message'], "status_code": failure['status_code']}
        return None

    def mutating_calls(self):
        return [(method, endpoint) for method, endpoint, _ in self.calls if method != 'GET']

    # --- make_compras_request ---

    def request(self, session, method, endpoint, data=None, params=None, custom_headers=None,
                operation_name="Operación Compras", error_message=None, base_url=None):
        method = method.upper()
        with self._lock:
            self.calls.append((method, endpoint, data))
            failure = self._match_failure(method, endpoint, data)
            if failure:
                return None, failure

            if base_url == PRODUCTOS_API_URL:
                return make_response(200, {"productos": list(self.productos)}), None
            if base_url == SEGURIDAD_API_URL:
                return self._seguridad(method, endpoint, data)
            return self._compras(method, endpoint, data)

    def _seguridad(self, method, endpoint, data):
        if endpoint == '/auditoria':
            return make_response(200, list(self.auditoria)), None
        if endpoint == '/usuarios/login':
            if self.login_response is None:
                return None, {"success": False, "message": "Credenciales inválidas", "status_code": 401}
            return make_response(200, self.login_response), None
        return None, {"success": False, "message": "Recurso no encontrado", "status_code": 404}

    def _compras(self, method, endpoint, data):
        match = re.fullmatch(r"/(proveedores|facturas|detalles-factura)(?:/([^/]+))?", endpoint)
        if not match:
            return None, {"success": False, "message": "Recurso no encontrado", "status_code": 404}

        resource, key = match.groups()
        store = {
            "proveedores": self.proveedores,
            "facturas": self.facturas,
            "detalles-factura": self.detalles,
        }[resource]
        if key is not None and resource != 'proveedores':
            key = int(key)

        if key is None:
            if method == 'GET':
                return make_response(200, list(store.values())), None
            if method == 'POST':
                record = dict(data)
                if resource == 'proveedores':
                    store[record['cedula_ruc']] = record
                else:
                    record['id'] = next(self._ids)
                    store[record['id']] = record
                return make_response(201, record), None
        else:
            if key not in store:
                return None, {"success": False, "message": "Registro no encontrado", "status_code": 404}
            if method == 'GET':
                return make_response(200, store[key]), None
            if method == 'PUT':
                record = {**store[key], **data}
                store[key] = record
                return make_response(200, record), None
            if method == 'DELETE':
                del store[key]
                return make_response(204), None

        return None, {"success": False, "message": f"Método HTTP no soportado: {method}", "status_code": 400}


@pytest.fixture
def compras_api(monkeypatch):
    api = FakeComprasApi()
    for name in MODULES_WITH_REMOTE_CALLS:
        module = importlib.import_module(name)
        monkeypatch.setattr(module, 'make_compras_request', api.request)
    return api


@pytest.fixture
def session():
    return requests.Session()


@pytest.fixture
def client(compras_api):
    from app import app

    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def auth_headers():
    return dict(AUTH_HEADERS)
