import os
import os.path
from dotenv import load_dotenv

# Carga las variables de entorno desde el archivo .env
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), '..', '.env'))

# API de almacenamiento de Compras (proveedores, facturas, detalles)
COMPRAS_API_URL = os.getenv("COMPRAS_API_URL", "https://modulocompras.onrender.com/api").rstrip('/')

# Catálogo de productos (módulo de Administración)
PRODUCTOS_API_URL = os.getenv("PRODUCTOS_API_URL", "https://ad-xglt.onrender.com/api/v1").rstrip('/')

# Aplicación de seguridad: login y auditoría
SEGURIDAD_API_URL = os.getenv("SEGURIDAD_API_URL", "https://aplicacion-de-seguridad-v2.onrender.com/api").rstrip('/')

# Código de módulo que se envía al login y nombre usado en los logs de auditoría
MODULO_ID = os.getenv("MODULO_ID", "COM")
AUDITORIA_MODULO = os.getenv("AUDITORIA_MODULO", "compras")

# Timeout (segundos) de cada petición saliente
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "60"))

# Cantidad de hilos para crear detalles en paralelo al dar de alta una factura completa
DETALLES_MAX_WORKERS = int(os.getenv("DETALLES_MAX_WORKERS", "4"))
