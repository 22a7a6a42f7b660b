import csv
from datetime import date, timedelta
from io import StringIO

import pytest

from app.core.errors import ValidationError
from app.services.report_service import resolve_window, sanitize_limit


HEADER = 'fecha,tipo,codigo,producto,cantidad,precio_unitario,total,categoria,usuario\n'


def _create(client, code, quantity, **extra):
    body = {'code': code, 'name': f'Producto {code}', 'quantity': quantity, 'unit_price': '2.50'}
    body.update(extra)
    r = client.post('/items', json=body)
    assert r.status_code == 201
    return r.json()


def test_window_defaults_to_trailing_thirty_days():
    window = resolve_window(today=date(2024, 3, 31))
    assert window.as_dict() == {'from': '2024-03-01', 'to': '2024-03-31'}
    assert window.end - window.start == timedelta(days=31)


def test_window_rejects_inverted_range():
    with pytest.raises(ValidationError):
        resolve_window(date(2024, 2, 1), date(2024, 1, 1))


def test_sanitize_limit():
    assert sanitize_limit(None) == 5
    assert sanitize_limit(0) == 1
    assert sanitize_limit(500) == 100
    assert sanitize_limit(80, maximum=50) == 50


def test_totals(client):
    _create(client, 'T-1', 4)
    _create(client, 'T-2', 6)

    assert client.get('/reports/total-items').json() == {'total_items': 2}
    assert client.get('/reports/total-units').json() == {'total_units': 10}
    assert client.get('/reports/total-value').json() == {'total_value': 25.0}


def test_top_and_bottom_stock(client):
    for code, quantity in (('S-1', 1), ('S-2', 9), ('S-3', 5)):
        _create(client, code, quantity)

    top = client.get('/reports/top-stock', params={'limit': 2}).json()
    assert [i['quantity'] for i in top] == [9, 5]
    bottom = client.get('/reports/bottom-stock', params={'limit': 0}).json()
    assert [i['quantity'] for i in bottom] == [1]


def test_low_stock_scenario(client):
    item = _create(client, 'L-1', 0, stock_min=5)
    low = client.get('/reports/low-stock').json()
    assert [i['id'] for i in low] == [item['id']]

    client.post(f"/items/{item['id']}/restock", json={'quantity': 5})
    assert client.get('/reports/low-stock').json() == []


def test_kpis_and_series(client):
    item = _create(client, 'K-1', 10, stock_min=8)
    client.post(f"/items/{item['id']}/consume", json={'quantity': 4})

    kpis = client.get('/reports/kpis').json()
    assert kpis['inbound'] == 10
    assert kpis['outbound'] == 4
    assert kpis['outbound_cost'] == 10.0
    assert kpis['inventory_value'] == 15.0
    assert kpis['items_in_alert'] == 1

    series = client.get('/reports/series').json()
    assert len(series['series']) == 1
    assert series['series'][0]['inbound'] == 10
    assert series['series'][0]['outbound'] == 4

    only_outbound = client.get('/reports/series', params={'kind': 'salida'}).json()
    assert only_outbound['series'][0]['inbound'] == 0

    assert client.get('/reports/series', params={'kind': 'editado'}).status_code == 400


def test_consumption_reports(client, category_id, user_id):
    soap = _create(client, 'C-1', 10, category_id=category_id)
    mop = _create(client, 'C-2', 10)
    client.post(f"/items/{soap['id']}/consume", json={'quantity': 3, 'actor_id': user_id})
    client.post(f"/items/{mop['id']}/consume", json={'quantity': 5})

    top = client.get('/reports/top-consumption').json()['items']
    assert [(i['id'], i['total_outbound']) for i in top] == [(mop['id'], 5), (soap['id'], 3)]

    by_category = client.get('/reports/consumption-by-category').json()['items']
    assert {(c['category'], c['total']) for c in by_category} == {('Limpieza', 3), (None, 5)}

    by_user = client.get('/reports/movements-by-user').json()['items']
    ana = next(u for u in by_user if u['user_id'] == user_id)
    assert ana['outbound'] == 3


def test_windowed_reports_exclude_other_days(client):
    _create(client, 'W-1', 10)
    params = {'from': '2000-01-01', 'to': '2000-01-31'}
    kpis = client.get('/reports/kpis', params=params).json()
    assert kpis['range'] == {'from': '2000-01-01', 'to': '2000-01-31'}
    assert kpis['inbound'] == 0

    r = client.get('/reports/kpis', params={'from': '2000-02-01', 'to': '2000-01-01'})
    assert r.status_code == 400


def test_export_empty_window_is_header_only(client):
    _create(client, 'E-1', 3)
    r = client.get('/reports/export', params={'from': '2000-01-01', 'to': '2000-01-02'})
    assert r.status_code == 200
    assert r.headers['content-type'].startswith('text/csv')
    assert 'movimientos.csv' in r.headers['content-disposition']
    assert r.text == HEADER


def test_export_rows_are_quoted(client, user_id):
    item = _create(client, 'E-"2"', 3, name='Jabon, liquido')
    client.post(f"/items/{item['id']}/consume", json={'quantity': 1, 'actor_id': user_id})
    client.delete(f"/items/{item['id']}")

    r = client.get('/reports/export')
    lines = r.text.splitlines()
    assert lines[0] + '\n' == HEADER
    assert all(line.startswith('"') for line in lines[1:])

    rows = list(csv.DictReader(StringIO(r.text)))
    assert [row['tipo'] for row in rows] == ['eliminado', 'salida', 'entrada']
    assert rows[0]['codigo'] == 'E-"2"'
    assert rows[0]['producto'] == 'Jabon, liquido'
    assert rows[1]['usuario'] == 'ana'

    only_outbound = list(csv.DictReader(StringIO(client.get('/reports/export', params={'kind': 'salida'}).text)))
    assert [row['cantidad'] for row in only_outbound] == ['1']
