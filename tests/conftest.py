import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes
from main import create_app


@pytest.fixture
def db():
    database = mongomock.MongoClient()["storemari_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    return TestClient(create_app(db))


@pytest.fixture
def tee():
    return {"name": "Tee", "category": "men", "price": 19.99, "image": "http://x/y.png"}
