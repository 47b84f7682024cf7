import pytest

from errors import NotFound
from products import ProductCatalog


def _create(client, headers, **fields):
    payload = {"name": "Chocolate Cake", "price": 500, "unit": "1 kg", "description": "Rich and moist"}
    payload.update(fields)
    resp = client.post("/admin/products", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["product"]


def _names(resp):
    assert resp.status_code == 200, resp.text
    return [p["name"] for p in resp.json()["data"]]


def test_create_and_list_publicly(client, admin_headers):
    product = _create(client, admin_headers)
    assert product["isActive"] is True
    assert product["isDeleted"] == {"status": False, "deletedAt": None}
    assert product["id"]
    assert _names(client.get("/products")) == ["Chocolate Cake"]
    assert client.get(f"/products/{product['id']}").json()["product"]["price"] == 500


def test_inactive_products_are_admin_only(client, admin_headers):
    _create(client, admin_headers, name="Seasonal Pie", isActive=False)
    _create(client, admin_headers, name="Brownie")
    assert _names(client.get("/products")) == ["Brownie"]
    assert sorted(_names(client.get("/admin/products", headers=admin_headers))) == ["Brownie", "Seasonal Pie"]
    assert _names(client.get("/admin/products?status=inactive", headers=admin_headers)) == ["Seasonal Pie"]
    assert _names(client.get("/admin/products?status=active", headers=admin_headers)) == ["Brownie"]


def test_inactive_product_is_hidden_from_public_lookup(client, admin_headers):
    product = _create(client, admin_headers, isActive=False)
    assert client.get(f"/products/{product['id']}").status_code == 404
    assert client.get(f"/admin/products/{product['id']}", headers=admin_headers).status_code == 200


def test_search_matches_name_or_description_case_insensitively(client, admin_headers):
    _create(client, admin_headers, name="Lemon Tart", description="Zesty")
    _create(client, admin_headers, name="Brownie", description="Fudgy with LEMON glaze")
    _create(client, admin_headers, name="Muffin", description="Blueberry")
    assert sorted(_names(client.get("/products?search=lemon"))) == ["Brownie", "Lemon Tart"]
    assert _names(client.get("/products?q=blueB")) == ["Muffin"]


def test_search_treats_regex_characters_literally(client, admin_headers):
    _create(client, admin_headers, name="Cake (Large)")
    _create(client, admin_headers, name="Cake Large")
    assert _names(client.get("/products", params={"search": "(Large)"})) == ["Cake (Large)"]


def test_listing_is_paginated(client, admin_headers):
    for i in range(3):
        _create(client, admin_headers, name=f"Item {i}")
    resp = client.get("/products?limit=2&page=2")
    body = resp.json()
    assert len(body["data"]) == 1
    assert body["pagination"] == {
        "page": 2, "limit": 2, "total": 3, "totalPages": 2, "hasNext": False, "hasPrev": True,
    }
    # garbage paging input is clamped rather than rejected
    assert client.get("/products?page=abc&limit=-1").json()["pagination"]["limit"] == 1
    far = client.get("/products?page=99999999999999999999")
    assert far.status_code == 200
    assert far.json()["data"] == []


def test_partial_update_only_touches_given_fields(client, admin_headers):
    product = _create(client, admin_headers)
    resp = client.put(f"/admin/products/{product['id']}", json={"price": 550}, headers=admin_headers)
    assert resp.status_code == 200
    updated = resp.json()["product"]
    assert updated["price"] == 550
    assert updated["name"] == "Chocolate Cake"
    assert updated["unit"] == "1 kg"


def test_invalid_product_body_is_rejected(client, admin_headers):
    resp = client.post("/admin/products", json={"name": "", "price": -1}, headers=admin_headers)
    assert resp.status_code == 400
    fields = {tuple(d["loc"]) for d in resp.json()["details"]}
    assert ("body", "name") in fields
    assert ("body", "price") in fields


def test_soft_delete_hides_everywhere_but_keeps_record(client, admin_headers, database):
    product = _create(client, admin_headers)
    pid = product["id"]
    assert client.delete(f"/admin/products/{pid}", headers=admin_headers).json() == {"ok": True}

    assert client.get(f"/products/{pid}").status_code == 404
    assert client.get(f"/admin/products/{pid}", headers=admin_headers).status_code == 404
    assert _names(client.get("/products")) == []
    assert _names(client.get("/admin/products", headers=admin_headers)) == []

    stored = ProductCatalog(database).get_by_id(pid, include_deleted=True)
    assert stored["isDeleted"]["status"] is True
    assert stored["isDeleted"]["deletedAt"] is not None


def test_mutations_share_the_tombstone_filter(client, admin_headers):
    product = _create(client, admin_headers)
    pid = product["id"]
    client.delete(f"/admin/products/{pid}", headers=admin_headers)
    second = client.delete(f"/admin/products/{pid}", headers=admin_headers)
    assert second.status_code == 404
    assert second.json() == {"error": "Product not found"}
    assert client.put(f"/admin/products/{pid}", json={"price": 1}, headers=admin_headers).status_code == 404


def test_unknown_and_malformed_ids_are_not_found(client, admin_headers, database):
    assert client.get("/admin/products/665f1c2e8a1b2c3d4e5f6a7b", headers=admin_headers).status_code == 404
    assert client.get("/admin/products/not-an-id", headers=admin_headers).status_code == 404
    with pytest.raises(NotFound):
        ProductCatalog(database).get_by_id("nope")


def test_catalog_admin_routes_require_admin(client, user_headers):
    assert client.post("/admin/products", json={"name": "X", "price": 1}).status_code == 401
    assert client.post("/admin/products", json={"name": "X", "price": 1}, headers=user_headers).status_code == 403
