from bson import ObjectId


def test_list_gemstones_hides_inactive_and_sorts_by_price(client, make_gemstone):
    make_gemstone("Emerald", price=3000.0)
    make_gemstone("Amethyst", price=200.0)
    make_gemstone("Retired Opal", active=False)

    response = client.get("/api/gemstones?sort=price-high")

    assert response.status_code == 200
    names = [gemstone["name"] for gemstone in response.get_json()]
    assert names == ["Emerald", "Amethyst"]


def test_list_gemstones_filters_by_category_and_search(client, make_gemstone, make_category):
    precious = make_category("Precious")
    make_gemstone("Burmese Ruby", category_id=precious["_id"])
    make_gemstone("Ceylon Sapphire", type="Sapphire", category_id=precious["_id"])
    make_gemstone("Amethyst", type="Amethyst")

    response = client.get(f"/api/gemstones?category={precious['_id']}&search=sapph")

    body = response.get_json()
    assert [gemstone["name"] for gemstone in body] == ["Ceylon Sapphire"]
    assert body[0]["category"]["name"] == "Precious"


def test_gemstone_detail_counts_views_and_applies_discount(client, make_gemstone):
    gemstone = make_gemstone(price=1000.0, discount=20.0, views=4)

    response = client.get(f"/api/gemstones/{gemstone['_id']}")

    body = response.get_json()
    assert response.status_code == 200
    assert body["views"] == 5
    assert body["finalPrice"] == 800.0


def test_gemstone_detail_errors(client):
    assert client.get("/api/gemstones/not-an-id").status_code == 400
    missing = client.get(f"/api/gemstones/{ObjectId()}")
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "Gemstone not found"


def test_related_gemstones_share_category(client, make_gemstone, make_category):
    category = make_category()
    ruby = make_gemstone("Ruby", category_id=category["_id"])
    make_gemstone("Sapphire", category_id=category["_id"])
    make_gemstone("Quartz")

    response = client.get(f"/api/gemstones/{ruby['_id']}?related=true")

    assert [gemstone["name"] for gemstone in response.get_json()] == ["Sapphire"]


def test_search_returns_pagination_and_facets(client, make_gemstone, make_category):
    category = make_category("Navaratna")
    make_gemstone("Ruby A", category_id=category["_id"], price=500.0)
    make_gemstone("Ruby B", category_id=category["_id"], price=1500.0, stock_count=0)
    make_gemstone("Pearl", type="Pearl", certification="IGI", price=900.0)

    response = client.get("/api/gemstones/search?minPrice=400&maxPrice=1000&limit=1")

    body = response.get_json()
    assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert len(body["gemstones"]) == 1
    facet_types = {entry["type"]: entry["count"] for entry in body["facets"]["types"]}
    assert facet_types == {"Ruby": 1, "Pearl": 1}
    assert body["facets"]["categories"] == [
        {"id": str(category["_id"]), "name": "Navaratna", "count": 1}
    ]


def test_search_in_stock_and_text_query(client, make_gemstone):
    make_gemstone("Ruby A", stock_count=3)
    make_gemstone("Ruby B", stock_count=0)
    make_gemstone("Pearl", type="Pearl")

    response = client.get("/api/gemstones/search?q=ruby&inStock=true")

    assert [gemstone["name"] for gemstone in response.get_json()["gemstones"]] == ["Ruby A"]


def test_search_sorts_by_price_descending(client, make_gemstone):
    make_gemstone("Cheap", price=10.0)
    make_gemstone("Dear", price=99.0)

    response = client.get("/api/gemstones/search?sortBy=price&sortOrder=desc")

    assert [gemstone["name"] for gemstone in response.get_json()["gemstones"]] == ["Dear", "Cheap"]


def test_review_requires_authentication(client, make_gemstone):
    gemstone = make_gemstone()

    response = client.post(f"/api/gemstones/{gemstone['_id']}/reviews", json={"rating": 5, "comment": "Lovely"})

    assert response.status_code == 401
    assert response.get_json()["code"] == "AUTH_REQUIRED"


def test_review_updates_gemstone_rating(client, db, make_gemstone, user_headers):
    gemstone = make_gemstone()

    first = client.post(
        f"/api/gemstones/{gemstone['_id']}/reviews",
        json={"rating": 5, "comment": "Stunning colour"},
        headers=user_headers,
    )
    client.post(
        f"/api/gemstones/{gemstone['_id']}/reviews",
        json={"rating": 4, "comment": "Very nice"},
        headers=user_headers,
    )

    assert first.status_code == 201
    assert first.get_json()["userName"] == "Asha Buyer"
    stored = db.gemstones.find_one({"_id": gemstone["_id"]})
    assert stored["rating"] == 4.5
    assert stored["review_count"] == 2

    listing = client.get(f"/api/gemstones/{gemstone['_id']}/reviews").get_json()
    assert len(listing) == 2


def test_review_validation(client, make_gemstone, user_headers):
    gemstone = make_gemstone()
    url = f"/api/gemstones/{gemstone['_id']}/reviews"

    assert client.post(url, json={"rating": 6, "comment": "x"}, headers=user_headers).status_code == 400
    assert client.post(url, json={"rating": 3.5, "comment": "x"}, headers=user_headers).status_code == 400
    assert client.post(url, json={"rating": 3, "comment": "  "}, headers=user_headers).status_code == 400


def test_categories_are_active_and_ordered(client, make_category):
    make_category("Second", order=2)
    make_category("First", order=1)
    make_category("Hidden", active=False)

    response = client.get("/api/categories")

    assert [category["name"] for category in response.get_json()] == ["First", "Second"]
