import threading

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import Conflict, InsufficientStock, NotFound, StorageError, ValidationError
from app.models.item import Item
from app.models.movement import ImmutableMovementError, Movement, MovementKind
from app.services.stock_ledger import StockLedger


def test_create_with_initial_stock_writes_one_inbound_movement(make_item, history, item_state):
    item_id = make_item(quantity=7)

    assert item_state(item_id)['quantity'] == 7
    rows = history(item_id)
    assert len(rows) == 1
    assert rows[0]['kind'] == 'entrada'
    assert rows[0]['quantity'] == 7


def test_create_with_zero_stock_writes_no_movement(make_item, history):
    item_id = make_item(quantity=0)
    assert history(item_id) == []


def test_create_rejects_duplicate_code(database, make_item):
    make_item(code='DUP')
    with database.session() as session:
        with pytest.raises(Conflict):
            StockLedger(session).create_with_initial_stock({'code': 'DUP', 'name': 'Otro'}, 3)
        assert session.query(Movement).count() == 0


def test_create_requires_code(database):
    with database.session() as session:
        with pytest.raises(ValidationError) as exc:
            StockLedger(session).create_with_initial_stock({'code': '  ', 'name': 'Sin codigo'})
    assert exc.value.field == 'code'


def test_inbound_then_outbound_round_trip(database, make_item, history, item_state):
    item_id = make_item(quantity=4)
    with database.session() as session:
        ledger = StockLedger(session)
        first = ledger.apply_delta(item_id, 10, MovementKind.inbound)
        second = ledger.apply_delta(item_id, 10, MovementKind.outbound)

    assert first.quantity == 14
    assert second.quantity == 4
    assert item_state(item_id)['quantity'] == 4
    kinds = [row['kind'] for row in history(item_id)]
    assert kinds == ['salida', 'entrada', 'entrada']


def test_outbound_beyond_stock_changes_nothing(database, make_item, history, item_state):
    item_id = make_item(quantity=3)
    with database.session() as session:
        with pytest.raises(InsufficientStock) as exc:
            StockLedger(session).apply_delta(item_id, 4, MovementKind.outbound)

    assert exc.value.available == 3
    assert exc.value.requested == 4
    assert item_state(item_id)['quantity'] == 3
    assert len(history(item_id)) == 1


@pytest.mark.parametrize('magnitude', [0, -2, 1.5, True])
def test_apply_delta_requires_positive_integer(database, make_item, magnitude):
    item_id = make_item(quantity=3)
    with database.session() as session:
        with pytest.raises(ValidationError):
            StockLedger(session).apply_delta(item_id, magnitude, MovementKind.inbound)


def test_apply_delta_rejects_non_balance_kinds(database, make_item):
    item_id = make_item(quantity=3)
    with database.session() as session:
        with pytest.raises(ValidationError):
            StockLedger(session).apply_delta(item_id, 1, MovementKind.edited)


def test_apply_delta_unknown_item(database):
    with database.session() as session:
        with pytest.raises(NotFound):
            StockLedger(session).apply_delta(999, 1, MovementKind.inbound)


def test_apply_delta_unknown_actor_rolls_back(database, make_item, item_state):
    item_id = make_item(quantity=3)
    with database.session() as session:
        with pytest.raises(NotFound) as exc:
            StockLedger(session).apply_delta(item_id, 2, MovementKind.inbound, actor_id=42)
    assert exc.value.field == 'actor_id'
    assert item_state(item_id)['quantity'] == 3


def _fail_inserts(monkeypatch, session):
    """Make every flush that writes new rows fail the way a lost connection does."""
    real_flush = session.flush

    def flush(*args, **kwargs):
        if session.new:
            raise OperationalError('INSERT INTO movimientos', {}, Exception('disk I/O error'))
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(session, 'flush', flush)


def test_apply_delta_store_failure_rolls_back(database, make_item, history, item_state, monkeypatch):
    item_id = make_item(quantity=5)
    with database.session() as session:
        _fail_inserts(monkeypatch, session)
        with pytest.raises(StorageError):
            StockLedger(session).apply_delta(item_id, 2, MovementKind.outbound)

    assert item_state(item_id)['quantity'] == 5
    assert [row['kind'] for row in history(item_id)] == ['entrada']


def test_create_store_failure_writes_nothing(database, history, monkeypatch):
    with database.session() as session:
        _fail_inserts(monkeypatch, session)
        with pytest.raises(StorageError):
            StockLedger(session).create_with_initial_stock({'code': 'IO-1', 'name': 'Balde'}, 4)
        assert session.query(Item).count() == 0
    assert history() == []


def test_apply_delta_records_actor(database, make_item, user_id, history):
    item_id = make_item()
    with database.session() as session:
        StockLedger(session).apply_delta(item_id, 5, MovementKind.inbound, actor_id=user_id)
    row = history(item_id)[0]
    assert row['actor_id'] == user_id
    assert row['actor_name'] == 'ana'


def test_record_edit_sets_quantity_and_logs_edit(database, make_item, history, item_state):
    item_id = make_item(quantity=5)
    with database.session() as session:
        StockLedger(session).record_edit(item_id, {'code': 'P-001', 'name': 'Renombrado'}, 2)

    state = item_state(item_id)
    assert state['quantity'] == 2
    assert state['name'] == 'Renombrado'
    latest = history(item_id)[0]
    assert latest['kind'] == 'editado'
    assert latest['quantity'] == 2


def test_delete_with_snapshot_keeps_history(database, make_item, history, item_state):
    item_id = make_item(quantity=2, code='BORRAR', name='Escoba')
    with database.session() as session:
        deleted = StockLedger(session).delete_with_snapshot(item_id)

    assert item_state(item_id) is None
    rows = history()
    assert [row['kind'] for row in rows] == ['eliminado', 'entrada']
    tombstone, inbound = rows
    assert tombstone['id'] == deleted.movement_id
    assert tombstone['item_name'] == 'Escoba'
    assert tombstone['item_code'] == 'BORRAR'
    assert tombstone['quantity'] == 0
    # Older movements lose the reference and carry no snapshot
    assert inbound['item_id'] is None
    assert inbound['item_name'] == 'Producto'


def test_movements_are_immutable(database, make_item):
    make_item(quantity=1)
    with database.session() as session:
        movement = session.query(Movement).first()
        movement.quantity = 99
        with pytest.raises(ImmutableMovementError):
            session.flush()
        session.rollback()


def test_history_orders_by_time_then_id(database, make_item, history):
    item_id = make_item(quantity=1)
    with database.session() as session:
        ledger = StockLedger(session)
        ledger.apply_delta(item_id, 1, MovementKind.inbound)
        ledger.apply_delta(item_id, 1, MovementKind.inbound)
    rows = history(item_id)
    keys = [(row['created_at'], row['id']) for row in rows]
    assert keys == sorted(keys, reverse=True)


def test_concurrent_consumes_never_oversell(database, make_item, item_state, history):
    stock, workers = 5, 12
    item_id = make_item(quantity=stock)
    results = []
    lock = threading.Lock()
    start = threading.Barrier(workers)

    def consume():
        start.wait()
        with database.session() as session:
            try:
                StockLedger(session).apply_delta(item_id, 1, MovementKind.outbound)
                outcome = 'ok'
            except InsufficientStock:
                outcome = 'insufficient'
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=consume) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count('ok') == stock
    assert results.count('insufficient') == workers - stock
    assert item_state(item_id)['quantity'] == 0
    assert len([row for row in history(item_id) if row['kind'] == 'salida']) == stock
