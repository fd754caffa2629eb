"""HTTP surface over the stocktake service."""


def _create(client, **body):
    response = client.post('/api/stocktakes', json=body)
    assert response.status_code == 201
    return response.json["data"]


def test_full_flow_over_http(client, make_product, read):
    product_id = make_product("Sữa tươi", barcode="8934567", stock=50)

    session = _create(client, branch_name="Kho 1", staff_name="An")
    assert session["session_code"].startswith("IAN")
    session_id = session["session_id"]

    attach = client.post(f'/api/stocktakes/{session_id}/items', json={"product_id": product_id})
    assert attach.status_code == 201
    assert attach.json["data"]["system_quantity"] == 50

    count = client.put(
        f'/api/stocktakes/{session_id}/items/{product_id}',
        json={"actual_quantity": 45, "reason": "Hỏng"},
    )
    assert count.status_code == 200
    assert count.json["data"]["difference"] == -5

    detail = client.get(f'/api/stocktakes/{session_id}')
    assert detail.status_code == 200
    assert detail.json["data"]["items"][0]["product_name"] == "Sữa tươi"
    assert detail.json["data"]["items"][0]["status"] == "discrepancy"

    balance = client.post(f'/api/stocktakes/{session_id}/balance', json={"balanced_by": "alice"})
    assert balance.status_code == 200
    assert balance.json["success"] is True
    assert balance.json["data"]["updated_count"] == 1
    assert "1" in balance.json["message"]

    assert read.stock(product_id) == 45
    listed = client.get('/api/stocktakes?status=balanced')
    assert [row["id"] for row in listed.json["data"]] == [session_id]
    assert listed.json["data"][0]["balanced_by"] == "alice"


def test_error_kinds_map_to_status_codes(client, make_product):
    session_id = _create(client)["session_id"]
    product_id = make_product(stock=3)
    client.post(f'/api/stocktakes/{session_id}/items', json={"product_id": product_id})

    missing = client.get('/api/stocktakes/9999')
    assert missing.status_code == 404
    assert missing.json == {"success": False, "error": "Stocktake session not found"}

    no_actor = client.post(f'/api/stocktakes/{session_id}/balance', json={})
    assert no_actor.status_code == 400

    nothing = client.post(f'/api/stocktakes/{session_id}/balance', json={"balanced_by": "alice"})
    assert nothing.status_code == 409

    duplicate = client.post(f'/api/stocktakes/{session_id}/items', json={"product_id": product_id})
    assert duplicate.status_code == 409

    bad_qty = client.put(f'/api/stocktakes/{session_id}/items/{product_id}', json={"actual_quantity": "x"})
    assert bad_qty.status_code == 400

    not_attached = client.put(f'/api/stocktakes/{session_id}/items/{product_id + 1}', json={"actual_quantity": 1})
    assert not_attached.status_code == 404


def test_patch_and_detach(client, make_product, read):
    session_id = _create(client)["session_id"]
    product_id = make_product()
    client.post(f'/api/stocktakes/{session_id}/items', json={"product_id": product_id})

    patched = client.patch(f'/api/stocktakes/{session_id}', json={"notes": "đếm lại kệ 2", "status": "in_progress"})
    assert patched.status_code == 200
    assert read.session(session_id).status == "in_progress"

    empty = client.patch(f'/api/stocktakes/{session_id}', json={})
    assert empty.status_code == 400

    removed = client.delete(f'/api/stocktakes/{session_id}/items/{product_id}')
    assert removed.status_code == 200
    assert read.items(session_id) == []


def test_non_object_json_bodies_are_rejected(client, read):
    session_id = _create(client, notes="keep")["session_id"]

    patched = client.patch(f'/api/stocktakes/{session_id}', json=["notes"])
    created = client.post('/api/stocktakes', json=["x"])
    attached = client.post(f'/api/stocktakes/{session_id}/items', json=[1])
    balanced = client.post(f'/api/stocktakes/{session_id}/balance', json="alice")

    for response in (patched, created, attached, balanced):
        assert response.status_code == 400
        assert response.json == {"success": False, "error": "Request body must be a JSON object"}
    assert read.session(session_id).notes == "keep"


def test_product_search_and_listing(client, make_product):
    product_id = make_product("Nước cam", sku="NC-1", barcode="555", stock=9)
    make_product("Nước chanh", sku="NCH-1")

    search = client.get('/api/products/search?q=555')
    assert search.status_code == 200
    assert [p["id"] for p in search.json["data"]] == [product_id]

    listing = client.get('/api/products', query_string={"page": 1, "per_page": 1, "q": "Nước"})
    assert listing.status_code == 200
    assert len(listing.json["data"]) == 1
    assert listing.json["pagination"]["total"] == 2
    assert listing.json["pagination"]["has_next"] is True


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
    assert response.json["checks"]["database"]["details"]["products"] == 0
