from datetime import date

import pytest

from routes.reports.saldos_reports import ReportParamsError, build_saldos_report, parse_report_range

PROVEEDORES = [
    {"cedula_ruc": "A", "nombre": "Andina"},
    {"cedula_ruc": "B", "nombre": "Bolívar"},
]


def _factura(cedula, total, fecha="2024-05-15", tipo_pago="Crédito", estado="Registrada"):
    return {
        "proveedor_cedula_ruc": cedula,
        "total": total,
        "fecha_emision": fecha,
        "tipo_pago": tipo_pago,
        "estado": estado,
    }


def test_report_sums_credit_facturas_in_range():
    facturas = [
        _factura("A", 100.0),
        _factura("A", "50.50", fecha="2024-05-31T00:00:00.000Z"),
        _factura("A", 999.0, tipo_pago="Contado"),
        _factura("A", 999.0, estado="Cancelada"),
        _factura("A", 999.0, fecha="2024-06-01"),
        _factura("B", 20.0, estado="Impresa"),
        _factura("C", 5.0),
        _factura("D", 0.0),
    ]

    report = build_saldos_report(facturas, PROVEEDORES, date(2024, 5, 1), date(2024, 5, 31))

    assert report['rows'] == [
        {"cedula_ruc": "A", "nombre": "Andina", "saldo": pytest.approx(150.5)},
        {"cedula_ruc": "B", "nombre": "Bolívar", "saldo": 20.0},
        {"cedula_ruc": "C", "nombre": "Proveedor Desconocido", "saldo": 5.0},
    ]
    assert report['total'] == pytest.approx(175.5)
    assert report['facturas_consideradas'] == 5
    assert report['period_label'] == "01/05/2024 - 31/05/2024"
    assert report['desde'] == "2024-05-01"


def test_report_sorting():
    facturas = [_factura("A", 10.0), _factura("B", 30.0)]

    report = build_saldos_report(facturas, PROVEEDORES, date(2024, 1, 1), date(2024, 12, 31), sort_key='saldo', direction='desc')

    assert [row['cedula_ruc'] for row in report['rows']] == ["B", "A"]


def test_report_without_rows():
    report = build_saldos_report([], PROVEEDORES, date(2024, 1, 1), date(2024, 1, 31))
    assert report['rows'] == []
    assert report['total'] == 0


@pytest.mark.parametrize("desde,hasta", [
    (None, "2024-01-31"),
    ("2024-02-01", "2024-01-31"),
    ("no-es-fecha", "2024-01-31"),
])
def test_parse_report_range_errors(desde, hasta):
    with pytest.raises(ReportParamsError):
        parse_report_range(desde, hasta)


def test_report_route_json(client, compras_api, auth_headers):
    compras_api.add_proveedor(cedula_ruc="A", nombre="Andina")
    compras_api.add_factura(proveedor_cedula_ruc="A", total="80.00", fecha_emision="2024-05-02")

    response = client.get('/api/reports/saldos-proveedores?desde=2024-05-01&hasta=2024-05-31', headers=auth_headers)

    assert response.status_code == 200
    assert response.get_json()['data']['rows'] == [{"cedula_ruc": "A", "nombre": "Andina", "saldo": 80.0}]


def test_report_route_requires_dates(client, auth_headers):
    response = client.get('/api/reports/saldos-proveedores?desde=2024-05-01', headers=auth_headers)
    assert response.status_code == 400


def test_report_route_pdf(client, compras_api, auth_headers):
    compras_api.add_proveedor(cedula_ruc="A", nombre="Ñandú Importaciones")
    compras_api.add_factura(proveedor_cedula_ruc="A", total="80.00", fecha_emision="2024-05-02")

    response = client.get('/api/reports/saldos-proveedores/pdf?desde=2024-05-01&hasta=2024-05-31', headers=auth_headers)

    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')
    assert 'reporte_saldos_proveedores.pdf' in response.headers['Content-Disposition']
