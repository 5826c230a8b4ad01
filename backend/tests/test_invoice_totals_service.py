import pytest

from services.invoice_totals_service import (
    TotalsRecomputeError,
    add_detalle,
    delete_detalle,
    fetch_detalles_factura,
    recompute_factura_totals,
    update_detalle,
)

USER_ID = 7


def _detalle(factura_id, **fields):
    raw = {
        "factura_id": factura_id,
        "producto_id": 1,
        "cantidad": 3,
        "precio_unitario": 10.0,
        "aplica_iva": True,
        "nombre_producto": "Tornillos",
    }
    raw.update(fields)
    return raw


def _stored_totals(api, factura_id):
    factura = api.facturas[factura_id]
    return float(factura['subtotal']), float(factura['iva']), float(factura['total'])


def test_add_first_detalle_updates_totals(compras_api, session):
    factura = compras_api.add_factura()

    result = add_detalle(session, USER_ID, _detalle(factura['id']))

    assert result['success'] is True
    detalle = result['data']['detalle']
    assert detalle['subtotal'] == pytest.approx(30.0)
    assert detalle['iva'] == pytest.approx(4.5)
    assert detalle['total'] == pytest.approx(34.5)
    assert detalle['usuario_creacion'] == USER_ID
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((30.0, 4.5, 34.5))
    assert compras_api.facturas[factura['id']]['usuario_modificacion'] == USER_ID


def test_second_detalle_and_delete_first(compras_api, session):
    factura = compras_api.add_factura()
    first = add_detalle(session, USER_ID, _detalle(factura['id']))['data']['detalle']

    result = add_detalle(session, USER_ID, _detalle(
        factura['id'], producto_id=2, cantidad=1, precio_unitario=20.0, aplica_iva=False, nombre_producto="Clavos"
    ))
    assert result['success'] is True
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((50.0, 4.5, 54.5))

    result = delete_detalle(session, USER_ID, first['id'], factura['id'])
    assert result['success'] is True
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((20.0, 0.0, 20.0))


def test_delete_only_detalle_resets_totals(compras_api, session):
    factura = compras_api.add_factura(subtotal="30.00", iva="4.50", total="34.50")
    detalle = compras_api.add_detalle(factura_id=factura['id'], subtotal="30.00", iva="4.50", total="34.50")

    result = delete_detalle(session, USER_ID, detalle['id'], factura['id'])

    assert result['success'] is True
    assert _stored_totals(compras_api, factura['id']) == (0.0, 0.0, 0.0)


def test_stored_totals_match_aggregate_of_current_detalles(compras_api, session):
    factura = compras_api.add_factura()
    otra = compras_api.add_factura(numero_factura_proveedor="002")
    compras_api.add_detalle(factura_id=otra['id'], subtotal="100.00", iva="15.00", total="115.00")
    compras_api.add_detalle(factura_id=factura['id'], subtotal="5.00", iva="0.75", total="5.75")

    add_detalle(session, USER_ID, _detalle(factura['id'], cantidad=2, precio_unitario=2.5))

    # Solo cuentan los detalles de la propia factura
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((10.0, 1.5, 11.5))


def test_update_recomputes_and_keeps_producto(compras_api, session):
    factura = compras_api.add_factura()
    created = add_detalle(session, USER_ID, _detalle(factura['id']))['data']['detalle']
    current = dict(compras_api.detalles[created['id']])

    result = update_detalle(
        session, USER_ID, created['id'],
        {"producto_id": 99, "cantidad": 2, "precio_unitario": 5, "aplica_iva": False},
        current=current
    )

    assert result['success'] is True
    stored = compras_api.detalles[created['id']]
    assert stored['producto_id'] == 1
    assert stored['nombre_producto'] == "Tornillos"
    assert stored['subtotal'] == pytest.approx(10.0)
    assert stored['usuario_modificacion'] == USER_ID
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((10.0, 0.0, 10.0))


def test_client_derived_fields_are_overwritten(compras_api, session):
    factura = compras_api.add_factura()

    result = add_detalle(session, USER_ID, _detalle(factura['id'], subtotal=1, iva=1, total=1))

    assert result['data']['detalle']['total'] == pytest.approx(34.5)


def test_validation_error_makes_no_remote_call(compras_api, session):
    result = add_detalle(session, USER_ID, _detalle(1, cantidad=0, nombre_producto="Desconocido"))

    assert result['success'] is False
    assert result['status_code'] == 400
    assert set(result['errors']) == {"cantidad", "nombre_producto"}
    assert result['message'].startswith("Datos de formulario no válidos")
    assert compras_api.calls == []


def test_detalle_post_failure_returns_error_without_recompute(compras_api, session):
    factura = compras_api.add_factura()
    compras_api.fail("POST", r"/detalles-factura", status_code=500, message="Base de datos no disponible")

    result = add_detalle(session, USER_ID, _detalle(factura['id']))

    assert result['success'] is False
    assert result['message'] == "Base de datos no disponible"
    assert result.get('stale_totals') is None
    assert compras_api.mutating_calls() == [("POST", "/detalles-factura")]


def test_recompute_failure_surfaces_committed_detalle(compras_api, session):
    factura = compras_api.add_factura()
    compras_api.fail("PUT", r"/facturas/\d+", status_code=503, message="Error de conexión con el servidor")

    result = add_detalle(session, USER_ID, _detalle(factura['id']))

    assert result['success'] is False
    assert result['stale_totals'] is True
    assert result['fatal'] is False
    assert result['status_code'] == 502
    assert "No se pudieron recalcular los totales de la factura" in result['message']
    assert result['data']['factura_id'] == factura['id']

    # El detalle quedó guardado aunque los totales no se actualizaron
    detalles, error = fetch_detalles_factura(session, factura['id'])
    assert error is None
    assert [d['id'] for d in detalles] == [result['data']['detalle']['id']]
    assert _stored_totals(compras_api, factura['id']) == (0.0, 0.0, 0.0)


def test_recompute_with_invalid_stored_header_is_fatal(compras_api, session):
    factura = compras_api.add_factura(tipo_pago=None)
    compras_api.add_detalle(factura_id=factura['id'])

    with pytest.raises(TotalsRecomputeError) as excinfo:
        recompute_factura_totals(session, USER_ID, factura['id'])

    assert excinfo.value.fatal is True
    assert "tipo_pago" in str(excinfo.value)
    assert compras_api.mutating_calls() == []


def test_recompute_missing_factura_raises(compras_api, session):
    with pytest.raises(TotalsRecomputeError) as excinfo:
        recompute_factura_totals(session, USER_ID, 404)
    assert excinfo.value.fatal is False


def test_delete_failure_reports_remote_error(compras_api, session):
    factura = compras_api.add_factura()
    result = delete_detalle(session, USER_ID, 12345, factura['id'])

    assert result['success'] is False
    assert result['status_code'] == 404


@pytest.mark.parametrize("precio", ["nan", "inf", "-inf"])
def test_non_finite_precio_makes_no_remote_call(compras_api, session, precio):
    result = add_detalle(session, USER_ID, _detalle(1, precio_unitario=precio))

    assert result['success'] is False
    assert result['status_code'] == 400
    assert list(result['errors']) == ["precio_unitario"]
    assert compras_api.calls == []


def test_update_without_current_loads_stored_detalle(compras_api, session):
    factura = compras_api.add_factura()
    created = add_detalle(session, USER_ID, _detalle(factura['id']))['data']['detalle']

    result = update_detalle(session, USER_ID, created['id'], {"cantidad": 1, "precio_unitario": 10, "aplica_iva": True})

    assert result['success'] is True
    assert compras_api.detalles[created['id']]['nombre_producto'] == "Tornillos"
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((10.0, 1.5, 11.5))


def test_update_cannot_move_detalle_to_another_factura(compras_api, session):
    factura = compras_api.add_factura()
    otra = compras_api.add_factura(numero_factura_proveedor="002")
    created = add_detalle(session, USER_ID, _detalle(factura['id']))['data']['detalle']
    before = compras_api.mutating_calls()

    result = update_detalle(session, USER_ID, created['id'], _detalle(otra['id']))

    assert result['success'] is False
    assert result['status_code'] == 409
    assert compras_api.mutating_calls() == before
    assert compras_api.detalles[created['id']]['factura_id'] == factura['id']
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((30.0, 4.5, 34.5))
    assert _stored_totals(compras_api, otra['id']) == (0.0, 0.0, 0.0)


def test_update_missing_detalle_is_404(compras_api, session):
    result = update_detalle(session, USER_ID, 12345, _detalle(1))

    assert result['success'] is False
    assert result['status_code'] == 404
    assert compras_api.mutating_calls() == []


def test_update_recompute_failure_keeps_committed_change(compras_api, session):
    factura = compras_api.add_factura()
    created = add_detalle(session, USER_ID, _detalle(factura['id']))['data']['detalle']
    compras_api.fail("PUT", r"/facturas/\d+", status_code=503, message="Error de conexión con el servidor")

    result = update_detalle(session, USER_ID, created['id'], {"cantidad": 5, "precio_unitario": 10, "aplica_iva": True})

    assert result['success'] is False
    assert result['stale_totals'] is True
    assert result['status_code'] == 502
    assert result['message'].startswith("El detalle se guardó")
    assert compras_api.detalles[created['id']]['cantidad'] == 5
    # Los totales siguen siendo los del alta
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((30.0, 4.5, 34.5))


def test_delete_recompute_failure_reports_deleted_detalle(compras_api, session):
    factura = compras_api.add_factura()
    created = add_detalle(session, USER_ID, _detalle(factura['id']))['data']['detalle']
    compras_api.fail("PUT", r"/facturas/\d+", status_code=503, message="Error de conexión con el servidor")

    result = delete_detalle(session, USER_ID, created['id'], factura['id'])

    assert result['success'] is False
    assert result['stale_totals'] is True
    assert result['status_code'] == 502
    assert result['message'].startswith("El detalle se eliminó")
    assert result['data'] == {"detalle": {"id": created['id']}, "factura_id": factura['id']}
    assert created['id'] not in compras_api.detalles
    assert _stored_totals(compras_api, factura['id']) == pytest.approx((30.0, 4.5, 34.5))
