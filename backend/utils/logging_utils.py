# logging_utils.py - Salida por consola de rutas y servicios de compras
#
# Errores y advertencias se imprimen siempre; el seguimiento paso a paso de
# las operaciones solo con DEBUG=true.

import os


def is_debug_mode() -> bool:
    return os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes', 'on')


def conditional_log(message: str, level: str = "info", force: bool = False):
    """Imprime `message` con su nivel si DEBUG está activo o si se pide con force"""
    if force or is_debug_mode():
        print(f"[{level.upper()}] {message}")


def log_function_call(func_name: str, minimal: bool = False):
    """Marca el inicio de una operación de varios pasos (alta, recálculo, etc.)"""
    conditional_log(f"→ {func_name}" if minimal else f"🧾 Inicio: {func_name}", "debug")


def log_search_operation(operation: str, details: str = ""):
    """Consultas previas a una escritura (duplicados, búsquedas por id)"""
    print(f"🔎 {operation}" + (f" [{details}]" if details else ""))


def _prefixed(symbol: str, message: str, func_name: str) -> str:
    return f"{symbol} [{func_name}] {message}" if func_name else f"{symbol} {message}"


def log_error(error_msg: str, func_name: str = ""):
    print(_prefixed("❌", error_msg, func_name))


def log_warning(warning_msg: str, func_name: str = ""):
    print(_prefixed("⚠️", warning_msg, func_name))


def log_success(success_msg: str, func_name: str = ""):
    conditional_log(_prefixed("✅", success_msg, func_name), "info")
