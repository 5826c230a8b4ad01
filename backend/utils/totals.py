"""
Cálculo de totales de facturas de compra.

`compute_line_item` calcula subtotal/IVA/total de un detalle y
`compute_invoice_totals` suma los detalles de una factura. Ambas son
funciones puras: son la única fuente de las fórmulas, tanto para la vista
previa como para lo que se guarda en la API.
"""

TAX_RATE = 0.15


def safe_float(value, default=0.0):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return default


def compute_line_item(cantidad, precio_unitario, aplica_iva):
    """Devuelve {'subtotal', 'iva', 'total'} de un detalle.

    Se asume cantidad >= 1 y precio_unitario >= 0 (la validación la hace quien llama).
    """
    subtotal = cantidad * precio_unitario
    iva = subtotal * TAX_RATE if aplica_iva else 0.0
    return {
        "subtotal": subtotal,
        "iva": iva,
        "total": subtotal + iva,
    }


def compute_invoice_totals(detalles):
    """Suma subtotal e IVA de todos los detalles; total = subtotal + iva.

    La API devuelve los decimales como texto ("30.00"), por eso se convierten acá.
    """
    subtotal = 0.0
    iva = 0.0
    for detalle in detalles or []:
        subtotal += safe_float(detalle.get('subtotal'))
        iva += safe_float(detalle.get('iva'))
    return {
        "subtotal": subtotal,
        "iva": iva,
        "total": subtotal + iva,
    }
