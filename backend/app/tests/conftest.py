import os

# Settings are read at import time
os.environ.setdefault('ENV', 'test')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('SECRET_KEY', 'test-secret')
os.environ.setdefault('DATABASE_URL', 'sqlite:///./inventario-test.db')

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.database import Database
from app.core.errors import UploadError
from app.core.security import Security
from app.main import create_app
from app.models.category import Category
from app.models.item import Item
from app.models.supplier import Supplier
from app.models.user import User
from app.services.blob_store import BlobStore, StoredBlob
from app.services.stock_ledger import StockLedger


class FakeBlobStore(BlobStore):
    """In-memory blob store that records what was stored and deleted."""

    def __init__(self):
        self.blobs = {}
        self.deleted = []
        self.fail_put = False
        self.fail_delete = False
        self._next = 1

    def put(self, data):
        if self.fail_put:
            raise UploadError('Image upload rejected: fake failure')
        public_id = f'productos/img{self._next}'
        self._next += 1
        self.blobs[public_id] = data
        return StoredBlob(url=f'https://res.example.com/{public_id}.png', public_id=public_id)

    def delete(self, public_id):
        if self.fail_delete:
            raise UploadError(f'Could not delete image {public_id}')
        self.deleted.append(public_id)
        self.blobs.pop(public_id, None)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        env='test',
        database_url=f"sqlite:///{tmp_path / 'inventario.db'}",
        db_lock_timeout_ms=10000,
        max_image_bytes=1024,
        backend_cors_origins='',
    )


@pytest.fixture
def database(settings):
    database = Database(settings)
    database.create_all()
    yield database
    database.dispose()


# Sessions below are short lived: on SQLite every transaction holds the write
# lock, so a session left open would block the requests under test.

@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def client(settings, database, blob_store):
    app = create_app(settings=settings, database=database, blob_store=blob_store)
    with TestClient(app) as client:
        yield client


def _add(database, obj):
    with database.session() as session:
        session.add(obj)
        session.commit()
        return obj.id


@pytest.fixture
def user_id(settings, database):
    hashed = Security(settings).hash_password('secret')
    return _add(database, User(name='ana', hashed_password=hashed, role='Empleado'))


@pytest.fixture
def category_id(database):
    return _add(database, Category(name='Limpieza'))


@pytest.fixture
def supplier_id(database):
    return _add(database, Supplier(name='Proveedor Uno'))


@pytest.fixture
def make_item(database):
    counter = {'n': 0}

    def _make(quantity=0, actor_id=None, **fields):
        counter['n'] += 1
        values = {'code': f'P-{counter["n"]:03d}', 'name': f'Producto {counter["n"]}', 'unit_price': 10}
        values.update(fields)
        with database.session() as session:
            return StockLedger(session).create_with_initial_stock(values, quantity, actor_id).id

    return _make


@pytest.fixture
def item_state(database):
    """Current row of an item as a dict, or None once deleted."""

    def _state(item_id):
        with database.session() as session:
            item = session.get(Item, item_id)
            if item is None:
                return None
            return {
                'quantity': item.quantity,
                'code': item.code,
                'name': item.name,
                'image_url': item.image_url,
                'image_public_id': item.image_public_id,
            }

    return _state


@pytest.fixture
def history(database):
    def _history(item_id=None):
        with database.session() as session:
            return StockLedger(session).history(item_id=item_id)

    return _history
