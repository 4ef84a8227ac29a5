from bson import ObjectId


def test_wishlist_add_list_and_remove(client, make_gemstone, user_headers):
    gemstone = make_gemstone()

    added = client.post("/api/users/wishlist", json={"gemstoneId": str(gemstone["_id"])}, headers=user_headers)
    assert added.status_code == 200
    entries = added.get_json()
    assert entries[0]["gemstone"]["name"] == "Burmese Ruby"

    duplicate = client.post(
        "/api/users/wishlist", json={"gemstoneId": str(gemstone["_id"])}, headers=user_headers
    )
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "Already in wishlist"

    removed = client.delete("/api/users/wishlist", json={"id": entries[0]["id"]}, headers=user_headers)
    assert removed.get_json() == []


def test_wishlist_rejects_unknown_gemstone(client, user_headers):
    response = client.post("/api/users/wishlist", json={"gemstoneId": str(ObjectId())}, headers=user_headers)

    assert response.status_code == 404


def test_wishlist_is_private(client, make_gemstone, make_user, auth_headers, user_headers):
    gemstone = make_gemstone()
    entry = client.post(
        "/api/users/wishlist", json={"gemstoneId": str(gemstone["_id"])}, headers=user_headers
    ).get_json()[0]
    other_headers = auth_headers(make_user(email="other@example.com"))

    assert client.get("/api/users/wishlist", headers=other_headers).get_json() == []
    response = client.delete("/api/users/wishlist", json={"id": entry["id"]}, headers=other_headers)
    assert response.status_code == 404


def test_address_crud_keeps_single_default(client, user_headers):
    first = client.post(
        "/api/addresses",
        json={"fullName": "Asha", "address": "1 Park St", "city": "Kolkata", "zipCode": "700016", "isDefault": True},
        headers=user_headers,
    )
    assert first.status_code == 201
    assert first.get_json()["postalCode"] == "700016"

    second = client.post(
        "/api/addresses",
        json={"name": "Asha", "street": "2 Lake Rd", "city": "Kolkata", "isDefault": True},
        headers=user_headers,
    ).get_json()

    listing = client.get("/api/addresses", headers=user_headers).get_json()
    defaults = [address["id"] for address in listing if address["isDefault"]]
    assert defaults == [second["id"]]

    updated = client.put(
        "/api/addresses", json={"id": second["id"], "city": "Howrah"}, headers=user_headers
    )
    assert updated.get_json()["city"] == "Howrah"

    deleted = client.delete(f"/api/addresses?id={second['id']}", headers=user_headers)
    assert deleted.status_code == 200
    assert len(client.get("/api/addresses", headers=user_headers).get_json()) == 1


def test_address_requires_fields(client, user_headers):
    response = client.post("/api/addresses", json={"name": "Asha"}, headers=user_headers)

    assert response.status_code == 400
    assert "street" in response.get_json()["error"]


def test_address_of_another_user_is_forbidden(client, make_user, auth_headers, user_headers):
    address = client.post(
        "/api/addresses", json={"name": "Asha", "street": "1 Park St", "city": "Kolkata"}, headers=user_headers
    ).get_json()
    other_headers = auth_headers(make_user(email="other@example.com"))

    response = client.put("/api/addresses", json={"id": address["id"], "city": "Delhi"}, headers=other_headers)

    assert response.status_code == 403


def test_cart_replace_prices_from_catalog(client, make_gemstone, user_headers):
    ruby = make_gemstone(price=1000.0, discount=10.0)
    pearl = make_gemstone("Pearl", price=250.0)

    response = client.put(
        "/api/cart",
        json={
            "items": [
                {"gemstoneId": str(ruby["_id"]), "quantity": 1},
                {"gemstoneId": str(ruby["_id"]), "quantity": 1},
                {"gemstoneId": str(pearl["_id"]), "quantity": 0},
            ]
        },
        headers=user_headers,
    )

    body = response.get_json()
    assert response.status_code == 200
    assert [(item["gemstoneId"], item["quantity"]) for item in body["items"]] == [(str(ruby["_id"]), 2)]
    assert body["items"][0]["price"] == 900.0
    assert body["subtotal"] == 1800.0
    assert body["totalItems"] == 2

    assert client.get("/api/cart", headers=user_headers).get_json()["subtotal"] == 1800.0
    assert client.delete("/api/cart", headers=user_headers).get_json()["items"] == []


def test_cart_rejects_unknown_gemstone(client, user_headers):
    response = client.put(
        "/api/cart", json={"items": [{"gemstoneId": str(ObjectId()), "quantity": 1}]}, headers=user_headers
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid cart items"
