# date_utils.py - Conversión de fechas entre la API de Compras y el backend

from datetime import date, datetime
from typing import Optional

API_DATE_FORMAT = "%Y-%m-%d"
DISPLAY_DATE_FORMAT = "%d/%m/%Y"


def parse_api_date(value) -> Optional[date]:
    """
    Interpreta una fecha tal como la devuelve la API ('2024-05-01',
    '2024-05-01T00:00:00.000Z', '2024-05-01 10:20:00'). Devuelve None si
    el valor está vacío o no se puede interpretar.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], API_DATE_FORMAT).date()
    except ValueError:
        return None


def format_api_date(value) -> Optional[str]:
    """Serializa una fecha como yyyy-MM-dd para enviar a la API"""
    parsed = parse_api_date(value)
    return parsed.strftime(API_DATE_FORMAT) if parsed else None


def format_display_date(value) -> str:
    parsed = parse_api_date(value)
    return parsed.strftime(DISPLAY_DATE_FORMAT) if parsed else ''
