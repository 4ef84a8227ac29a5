import copy

from shankarmala.content import DEFAULT_SEO, DEFAULT_THEME


def test_faq_crud_and_public_listing(client, db, admin_headers):
    created = client.post(
        "/api/admin/faqs",
        json={"question": "Are your stones certified?", "answer": "Yes, by GIA or IGI.", "category": "quality"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    faq = created.get_json()
    assert faq["order"] == 0
    assert faq["active"] is True

    client.post(
        "/api/admin/faqs",
        json={"question": "Hidden?", "answer": "Yes", "active": False, "order": 1},
        headers=admin_headers,
    )
    public = client.get("/api/faq").get_json()
    assert [entry["question"] for entry in public] == ["Are your stones certified?"]

    updated = client.patch(f"/api/admin/faqs/{faq['id']}", json={"answer": "Always."}, headers=admin_headers)
    assert updated.get_json()["answer"] == "Always."
    assert updated.get_json()["question"] == "Are your stones certified?"

    assert client.delete(f"/api/admin/faqs/{faq['id']}", headers=admin_headers).status_code == 204
    assert client.delete(f"/api/admin/faqs/{faq['id']}", headers=admin_headers).status_code == 404
    assert db.audit_logs.count_documents({"action": "Deleted FAQ"}) == 1


def test_content_entry_validation(client, admin_headers):
    missing = client.post("/api/admin/banners", json={"title": "Diwali"}, headers=admin_headers)
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "image is required"

    bad_rating = client.post(
        "/api/admin/testimonials", json={"name": "Meera", "content": "Lovely", "rating": 7}, headers=admin_headers
    )
    assert bad_rating.get_json()["error"] == "Rating must be a whole number between 1 and 5"


def test_testimonials_and_press_are_public(client, admin_headers):
    client.post(
        "/api/admin/testimonials",
        json={"name": "Meera", "content": "Beautiful emerald", "rating": 5, "location": "Mumbai"},
        headers=admin_headers,
    )
    client.post(
        "/api/admin/press",
        json={"title": "Heritage jewellers", "content": "A profile", "publication": "The Telegraph"},
        headers=admin_headers,
    )

    testimonials = client.get("/api/testimonials").get_json()
    assert testimonials[0]["rating"] == 5
    assert testimonials[0]["location"] == "Mumbai"
    assert client.get("/api/press").get_json()[0]["publication"] == "The Telegraph"


def test_content_routes_are_admin_only(client, user_headers):
    assert client.get("/api/admin/faqs", headers=user_headers).status_code == 403
    assert client.get("/api/admin/faqs").status_code == 401


def test_hero_defaults_and_update(client, admin_headers):
    hero = client.get("/api/admin/homepage/hero", headers=admin_headers).get_json()
    assert hero["title"] == "Timeless Elegance"

    rejected = client.put("/api/admin/homepage/hero", json={"title": "Only title"}, headers=admin_headers)
    assert rejected.status_code == 400

    response = client.put(
        "/api/admin/homepage/hero",
        json={"title": "Gems of Bengal", "subtitle": "Since 1952", "primaryCTA": "Shop now"},
        headers=admin_headers,
    )
    assert response.get_json()["message"] == "Hero section updated successfully"

    public = client.get("/api/public/homepage").get_json()
    assert public["hero"]["title"] == "Gems of Bengal"
    assert public["hero"]["primaryCTA"] == "Shop now"
    assert public["hero"]["secondaryCTA"] == "Learn Our Story"


def test_sections_defaults_and_replace(client, admin_headers):
    defaults = client.get("/api/admin/homepage/sections", headers=admin_headers).get_json()
    assert [section["key"] for section in defaults][:2] == ["categories", "featured"]
    assert all(section["key"] != "hero" for section in defaults)

    response = client.put(
        "/api/admin/homepage/sections",
        json={"sections": [{"key": "featured", "title": "Editor's Picks", "order": 1, "active": False}]},
        headers=admin_headers,
    )
    body = response.get_json()
    featured = next(section for section in body["sections"] if section["key"] == "featured")
    assert featured["title"] == "Editor's Picks"
    assert featured["active"] is False

    public_keys = [section["key"] for section in client.get("/api/public/homepage").get_json()["sections"]]
    assert "featured" not in public_keys
    assert "categories" in public_keys

    hero = client.put(
        "/api/admin/homepage/sections", json=[{"key": "hero", "title": "Nope"}], headers=admin_headers
    )
    assert hero.status_code == 400


def test_navigation_update_and_validation(client, admin_headers):
    assert client.get("/api/public/navigation").status_code == 404
    current = client.get("/api/admin/navigation", headers=admin_headers).get_json()
    assert current["mainMenu"][0]["label"] == "Home"

    partial = client.put("/api/admin/navigation", json={"mainMenu": []}, headers=admin_headers)
    assert partial.get_json()["error"] == "Missing required fields: footerMenu, socialLinks"

    broken = client.put(
        "/api/admin/navigation",
        json={"mainMenu": [{"id": "x", "label": "X"}], "footerMenu": [], "socialLinks": []},
        headers=admin_headers,
    )
    assert broken.status_code == 400

    menu = [{"id": "gems", "label": "Gemstones", "href": "/shop", "order": 1, "active": True}]
    response = client.put(
        "/api/admin/navigation",
        json={"mainMenu": menu, "footerMenu": [], "socialLinks": []},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert client.get("/api/public/navigation").get_json()["mainMenu"] == menu


def test_seo_update_validates_url(client, admin_headers):
    payload = copy.deepcopy(DEFAULT_SEO)
    payload["structuredData"] = payload.pop("structured_data")
    payload["global"]["siteUrl"] = "not a url"

    rejected = client.put("/api/admin/seo", json=payload, headers=admin_headers)
    assert rejected.get_json()["error"] == "Site URL must be a valid http(s) URL"

    payload["global"]["siteUrl"] = "https://gems.example.com"
    payload["global"]["siteTitle"] = "Shankarmala Gems"
    accepted = client.put("/api/admin/seo", json=payload, headers=admin_headers)
    assert accepted.status_code == 200
    assert client.get("/api/public/seo").get_json()["global"]["siteTitle"] == "Shankarmala Gems"

    missing = client.put("/api/admin/seo", json={"global": payload["global"]}, headers=admin_headers)
    assert missing.status_code == 400

    del payload["global"]["siteUrl"]
    no_url = client.put("/api/admin/seo", json=payload, headers=admin_headers)
    assert no_url.status_code == 400
    assert no_url.get_json()["error"] == "Site URL is required"
    assert client.get("/api/public/seo").get_json()["global"]["siteUrl"] == "https://gems.example.com"


def test_site_settings_patch(client, admin_headers):
    assert client.patch("/api/admin/sitesettings", json={}, headers=admin_headers).status_code == 400

    bad_email = client.patch("/api/admin/sitesettings", json={"contactEmail": "nope"}, headers=admin_headers)
    assert bad_email.get_json()["error"] == "Invalid contact email"

    response = client.patch(
        "/api/admin/sitesettings", json={"contactPhone": "+91 33 2222 0000"}, headers=admin_headers
    )
    body = response.get_json()
    assert body["contactPhone"] == "+91 33 2222 0000"
    assert body["siteName"] == "Shankarmala"
    assert client.get("/api/public/site").get_json()["contactPhone"] == "+91 33 2222 0000"


def test_theme_requires_hex_colours(client, admin_headers):
    assert client.get("/api/public/theme").get_json()["colors"] == DEFAULT_THEME["colors"]

    payload = {
        "colors": {"primary": "#123456", "accent": "gold"},
        "fonts": DEFAULT_THEME["fonts"],
        "spacing": DEFAULT_THEME["spacing"],
    }
    rejected = client.put("/api/admin/theme", json=payload, headers=admin_headers)
    assert rejected.status_code == 400
    assert rejected.get_json()["details"] == {"invalidColors": ["accent"]}

    payload["colors"]["accent"] = "#abc"
    response = client.put("/api/admin/theme", json=payload, headers=admin_headers)
    assert response.get_json()["colors"] == {"primary": "#123456", "accent": "#abc"}
    assert response.get_json()["borderRadius"] == DEFAULT_THEME["border_radius"]
    assert client.get("/api/public/theme").get_json()["colors"]["accent"] == "#abc"


def test_theme_update_keeps_stored_sections(client, admin_headers):
    shadows = {**DEFAULT_THEME["shadows"], "small": "shadow-none"}
    payload = {
        "colors": {"primary": "#123456"},
        "fonts": DEFAULT_THEME["fonts"],
        "spacing": DEFAULT_THEME["spacing"],
        "shadows": shadows,
    }
    client.put("/api/admin/theme", json=payload, headers=admin_headers)

    del payload["shadows"]
    payload["colors"] = {"primary": "#654321"}
    response = client.put("/api/admin/theme", json=payload, headers=admin_headers)

    body = response.get_json()
    assert body["colors"] == {"primary": "#654321"}
    assert body["shadows"] == shadows
    assert client.get("/api/public/theme").get_json()["shadows"]["small"] == "shadow-none"


def test_newsletter_subscription(client, db):
    first = client.post("/api/newsletter", json={"email": "Fan@Example.com"})
    again = client.post("/api/newsletter", json={"email": "fan@example.com"})
    invalid = client.post("/api/newsletter", json={"email": "nope"})

    assert first.get_json()["message"] == "Thank you for subscribing!"
    assert again.get_json()["message"] == "You are already subscribed."
    assert invalid.status_code == 400
    assert db.newsletter_subscribers.count_documents({}) == 1
