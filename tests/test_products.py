from unittest.mock import MagicMock

from bson import ObjectId
from bson.errors import InvalidDocument
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from main import create_app


def test_create_product_defaults_stock(client, tee):
    res = client.post("/api/products", json=tee)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    product = body["product"]
    assert product["id"] == body["productId"]
    assert product["stock"] == 0
    assert product["name"] == "Tee"
    assert product["category"] == "men"
    assert product["price"] == 19.99
    assert product["image"] == "http://x/y.png"
    assert "createdAt" in product and "updatedAt" in product


def test_created_product_is_returned_by_id(client, tee):
    created = client.post("/api/products", json=dict(tee, description="Plain cotton", stock=12)).json()

    res = client.get(f"/api/products/{created['productId']}")
    assert res.status_code == 200
    assert res.json() == created["product"]


def test_create_product_trims_text_fields(client, tee):
    res = client.post("/api/products", json=dict(tee, name="  Tee  ", description="  soft "))
    product = res.json()["product"]
    assert product["name"] == "Tee"
    assert product["description"] == "soft"


def test_create_product_rejects_negative_price(client, db, tee):
    res = client.post("/api/products", json=dict(tee, price=-1))
    assert res.status_code == 400
    assert "price: Price cannot be negative" in res.json()["details"]
    assert db["products"].count_documents({}) == 0


def test_create_product_rejects_negative_stock(client, tee):
    res = client.post("/api/products", json=dict(tee, stock=-3))
    assert res.status_code == 400
    assert "Stock cannot be negative" in res.json()["error"]


def test_create_product_rejects_unknown_category(client, tee):
    res = client.post("/api/products", json=dict(tee, category="pets"))
    assert res.status_code == 400
    assert res.json()["details"] == ["category: Category must be men, women, or kids"]


def test_create_product_collects_all_missing_fields(client):
    res = client.post("/api/products", json={})
    assert res.status_code == 400
    details = res.json()["details"]
    assert "name: Product name is required" in details
    assert "category: Category is required" in details
    assert "price: Price is required" in details
    assert "image: Image URL is required" in details


def test_create_product_rejects_blank_name(client, tee):
    res = client.post("/api/products", json=dict(tee, name="   "))
    assert res.status_code == 400
    assert res.json()["details"] == ["name: Product name is required"]


def test_list_products_filters_by_category(client, tee):
    client.post("/api/products", json=tee)
    client.post("/api/products", json=dict(tee, name="Dress", category="women"))
    client.post("/api/products", json=dict(tee, name="Onesie", category="kids"))

    men = client.get("/api/products", params={"category": "men"}).json()
    assert [p["name"] for p in men] == ["Tee"]
    assert all(p["category"] == "men" for p in men)

    assert len(client.get("/api/products").json()) == 3
    assert len(client.get("/api/products", params={"category": "all"}).json()) == 3


def test_list_products_empty(client):
    res = client.get("/api/products")
    assert res.status_code == 200
    assert res.json() == []


def test_get_product_not_found(client):
    res = client.get(f"/api/products/{ObjectId()}")
    assert res.status_code == 404
    assert res.json() == {"error": "Product not found"}


def test_get_product_malformed_id_is_store_error(client):
    res = client.get("/api/products/not-an-id")
    assert res.status_code == 500
    assert "not-an-id" in res.json()["error"]


def test_list_products_store_failure():
    db = MagicMock()
    db.__getitem__.return_value.find.side_effect = ServerSelectionTimeoutError("connection refused")
    client = TestClient(create_app(db))

    res = client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"error": "connection refused"}


def test_create_product_accepts_fractional_stock(client, tee):
    created = client.post("/api/products", json=dict(tee, stock=1.5))
    assert created.status_code == 201
    product = created.json()["product"]
    assert product["stock"] == 1.5

    fetched = client.get(f"/api/products/{product['id']}").json()
    assert fetched["stock"] == 1.5


def test_create_product_keeps_integer_stock(client, tee):
    product = client.post("/api/products", json=dict(tee, stock=7)).json()["product"]
    assert product["stock"] == 7
    assert isinstance(product["stock"], int)


def test_create_product_rejects_stock_beyond_int64(client, db, tee):
    res = client.post("/api/products", json=dict(tee, stock=10**20))
    assert res.status_code == 400
    assert res.json()["details"] == ["stock: Stock is too large"]
    assert db["products"].count_documents({}) == 0


def test_create_product_encoding_failure_is_json_error(tee):
    db = MagicMock()
    db.__getitem__.return_value.insert_one.side_effect = OverflowError("MongoDB can only handle up to 8-byte ints")
    client = TestClient(create_app(db))

    res = client.post("/api/products", json=tee)
    assert res.status_code == 500
    assert res.json() == {"error": "MongoDB can only handle up to 8-byte ints"}


def test_create_product_invalid_document_is_json_error(tee):
    db = MagicMock()
    db.__getitem__.return_value.insert_one.side_effect = InvalidDocument("cannot encode object")
    client = TestClient(create_app(db))

    res = client.post("/api/products", json=tee)
    assert res.status_code == 500
    assert res.json() == {"error": "cannot encode object"}
