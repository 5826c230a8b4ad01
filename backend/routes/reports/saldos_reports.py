from flask import Blueprint, request, jsonify, send_file
from io import BytesIO

from fpdf import FPDF

from routes.auth_utils import get_session_with_auth
from routes.proveedores import fetch_proveedores
from services.facturas_service import fetch_facturas
from utils.date_utils import format_api_date, format_display_date, parse_api_date
from utils.http_utils import handle_compras_error
from utils.totals import safe_float
from utils.validation_utils import ESTADO_CANCELADA

saldos_reports_bp = Blueprint('saldos_reports_bp', __name__)

TIPO_PAGO_CREDITO = "Crédito"
PROVEEDOR_DESCONOCIDO = "Proveedor Desconocido"
REPORT_TITLE = "Reporte de Saldos de Proveedor"
PDF_FILENAME = "reporte_saldos_proveedores.pdf"
SORT_KEYS = ('cedula_ruc', 'nombre', 'saldo')


class ReportParamsError(ValueError):
    pass


def parse_report_range(desde_raw, hasta_raw):
    if not desde_raw or not hasta_raw:
        raise ReportParamsError("Por favor, seleccione una fecha de inicio y una fecha de fin.")
    desde = parse_api_date(desde_raw)
    hasta = parse_api_date(hasta_raw)
    if desde is None or hasta is None or desde > hasta:
        raise ReportParamsError("Las fechas seleccionadas no son válidas. Verifique el rango.")
    return desde, hasta


def build_saldos_report(facturas, proveedores, desde, hasta, sort_key=None, direction='asc'):
    """
    Saldo pendiente por proveedor: suma del total de las facturas a crédito
    no canceladas emitidas entre `desde` y `hasta` (inclusive). Solo quedan
    los proveedores con saldo positivo.
    """
    saldos = {}
    consideradas = 0
    for factura in facturas:
        if factura.get('tipo_pago') != TIPO_PAGO_CREDITO or factura.get('estado') == ESTADO_CANCELADA:
            continue
        fecha_emision = parse_api_date(factura.get('fecha_emision'))
        if fecha_emision is None or fecha_emision < desde or fecha_emision > hasta:
            continue
        consideradas += 1
        cedula_ruc = str(factura.get('proveedor_cedula_ruc') or '')
        saldos[cedula_ruc] = saldos.get(cedula_ruc, 0.0) + safe_float(factura.get('total'))

    nombres = {str(p.get('cedula_ruc')): p.get('nombre') for p in proveedores}
    rows = [
        {"cedula_ruc": cedula_ruc, "nombre": nombres.get(cedula_ruc) or PROVEEDOR_DESCONOCIDO, "saldo": saldo}
        for cedula_ruc, saldo in saldos.items()
        if saldo > 0
    ]

    if sort_key in SORT_KEYS:
        rows.sort(key=lambda row: row[sort_key], reverse=(direction == 'desc'))

    return {
        "title": REPORT_TITLE,
        "desde": format_api_date(desde),
        "hasta": format_api_date(hasta),
        "period_label": f"{format_display_date(desde)} - {format_display_date(hasta)}",
        "rows": rows,
        "total": sum(row['saldo'] for row in rows),
        "facturas_consideradas": consideradas,
    }


def _load_report(session):
    """Lee parámetros, trae facturas y proveedores y arma el reporte"""
    desde, hasta = parse_report_range(request.args.get('desde'), request.args.get('hasta'))

    facturas, error = fetch_facturas(session)
    if error:
        return None, handle_compras_error(error, "Error al obtener las facturas.")
    proveedores, error = fetch_proveedores(session)
    if error:
        return None, handle_compras_error(error, "Error al obtener los proveedores.")

    report = build_saldos_report(
        facturas,
        proveedores,
        desde,
        hasta,
        sort_key=request.args.get('sort'),
        direction=request.args.get('direction', 'asc')
    )
    return report, None


@saldos_reports_bp.route('/api/reports/saldos-proveedores', methods=['GET'])
def get_saldos_proveedores():
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    try:
        report, error_response = _load_report(session)
    except ReportParamsError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    if error_response:
        return error_response

    message = None
    if not report['rows']:
        message = "No se encontraron saldos pendientes para el rango de fechas seleccionado."
    return jsonify({"success": True, "data": report, "message": message})


@saldos_reports_bp.route('/api/reports/saldos-proveedores/pdf', methods=['GET'])
def get_saldos_proveedores_pdf():
    session, headers, user_id, error_response = get_session_with_auth()
    if error_response:
        return error_response

    try:
        report, error_response = _load_report(session)
    except ReportParamsError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    if error_response:
        return error_response

    buffer, filename = _build_pdf(report)
    return send_file(buffer, mimetype='application/pdf', as_attachment=True, download_name=filename)


def _build_pdf(report):
    pdf = FPDF(orientation='P', unit='mm', format='A4')
    pdf.set_auto_page_break(auto=True, margin=16)
    pdf.add_page()

    header_fill = (41, 128, 185)
    footer_fill = (230, 230, 230)
    zebra_light = (245, 245, 245)
    zebra_dark = (255, 255, 255)

    pdf.set_font('Helvetica', 'B', 14)
    pdf.set_text_color(20, 20, 20)
    pdf.cell(0, 8, _latin(report['title']))
    pdf.ln(8)
    pdf.set_font('Helvetica', '', 10)
    pdf.cell(0, 6, _latin(f"Rango de fechas: {report['period_label']}"))
    pdf.ln(10)

    usable_width = pdf.w - pdf.l_margin - pdf.r_margin
    columns = [("nombre", "Proveedor", usable_width * 0.65), ("saldo", "Saldo Pendiente", usable_width * 0.35)]

    def render_table_header():
        pdf.set_x(pdf.l_margin)
        pdf.set_fill_color(*header_fill)
        pdf.set_text_color(255, 255, 255)
        pdf.set_font('Helvetica', 'B', 10)
        for _, label, width in columns:
            pdf.cell(width, 8, _latin(label), border=0, align='L', fill=True)
        pdf.ln(8)
        pdf.set_font('Helvetica', '', 9)
        pdf.set_text_color(20, 20, 20)

    render_table_header()

    row_height = 7
    for idx, row in enumerate(report['rows']):
        if pdf.get_y() + row_height > pdf.page_break_trigger:
            pdf.add_page()
            render_table_header()
        pdf.set_fill_color(*(zebra_light if idx % 2 else zebra_dark))
        pdf.set_x(pdf.l_margin)
        pdf.cell(columns[0][2], row_height, _latin(row['nombre']), border=0, align='L', fill=True)
        pdf.cell(columns[1][2], row_height, _latin(_format_currency(row['saldo'])), border=0, align='R', fill=True)
        pdf.ln(row_height)

    # El total general va solo al final del reporte
    pdf.set_x(pdf.l_margin)
    pdf.set_fill_color(*footer_fill)
    pdf.set_font('Helvetica', 'B', 10)
    pdf.cell(columns[0][2], 8, _latin("Total General"), border=0, align='L', fill=True)
    pdf.cell(columns[1][2], 8, _latin(_format_currency(report['total'])), border=0, align='R', fill=True)
    pdf.ln(8)

    pdf_data = pdf.output()
    if isinstance(pdf_data, (bytearray, bytes)):
        pdf_bytes = bytes(pdf_data)
    else:
        pdf_bytes = str(pdf_data).encode('latin-1', 'ignore')

    buffer = BytesIO(pdf_bytes)
    buffer.seek(0)
    return buffer, PDF_FILENAME


def _latin(value):
    if value is None:
        return ''
    if isinstance(value, str):
        return value.encode('latin-1', 'ignore').decode('latin-1')
    return str(value)


def _format_currency(value):
    try:
        num = float(value)
    except (TypeError, ValueError):
        return str(value)
    return f"${num:.2f}"
