from decimal import Decimal


def test_anonymous_admin_request_redirects_to_login(client):
    response = client.get("/admin/products?category=SHIRTS", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/login?redirect=/admin/products"


def test_root_redirects_by_auth_state(client):
    response = client.get("/", follow_redirects=False)
    assert response.headers["location"] == "/login"


def test_login_sets_cookie_and_redirects_back(client):
    response = client.post(
        "/login",
        data={"email": "admin@nuvyra.test", "password": "correct horse battery", "redirect": "/admin/settings"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/admin/settings"
    assert "nuvyra_session" in response.cookies

    assert client.get("/admin/me").json()["email"] == "admin@nuvyra.test"
    login_page = client.get("/login", follow_redirects=False)
    assert login_page.status_code == 303
    assert login_page.headers["location"] == "/admin/products"


def test_login_with_wrong_password(client):
    response = client.post(
        "/login", data={"email": "admin@nuvyra.test", "password": "nope"}, follow_redirects=False
    )
    assert response.status_code == 401


def test_logout_ends_session(admin_client):
    response = admin_client.post("/logout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"

    admin_client.cookies.clear()
    assert admin_client.get("/admin/products", follow_redirects=False).status_code == 303


def test_product_crud_flow(admin_client, product_data):
    created = admin_client.post("/admin/products", json=product_data(category=" shirts "))
    assert created.status_code == 201
    body = created.json()
    product = body["product"]
    assert product["category"] == "SHIRTS"
    assert Decimal(str(product["price"])) == Decimal("10")
    assert body["revalidate"] == ["/admin/products"]

    product_id = product["id"]
    fetched = admin_client.get(f"/admin/products/{product_id}")
    assert fetched.status_code == 200
    assert fetched.json()["created_at"] == product["created_at"]

    updated = admin_client.put(f"/admin/products/{product_id}", json=product_data(name="Polo", price="15"))
    assert updated.status_code == 200
    assert updated.json()["product"]["name"] == "Polo"
    assert updated.json()["product"]["created_at"] == product["created_at"]

    deleted = admin_client.delete(f"/admin/products/{product_id}")
    assert deleted.status_code == 200
    assert admin_client.get(f"/admin/products/{product_id}").status_code == 404


def test_create_product_validation_error_returns_field_errors(admin_client, product_data):
    response = admin_client.post("/admin/products", json=product_data(image="not-a-url", price=-5))

    assert response.status_code == 400
    errors = response.json()["detail"]["errors"]
    assert errors["image"] == ["Invalid image URL."]
    assert errors["price"] == ["Price cannot be negative."]
    assert admin_client.get("/admin/products").json()["total"] == 0


def test_list_filters_sorting_and_categories(admin_client, product_data):
    admin_client.post("/admin/products", json=product_data(name="B", category="shoes"))
    admin_client.post("/admin/products", json=product_data(name="A", category="shirts", is_active="false"))
    admin_client.post("/admin/products", json=product_data(name="C", category=" Shirts"))

    listing = admin_client.get("/admin/products", params={"category": "shirts", "sortOrder": "desc"}).json()
    assert [item["name"] for item in listing["items"]] == ["C", "A"]

    active = admin_client.get("/admin/products", params={"isActive": "false"}).json()
    assert [item["name"] for item in active["items"]] == ["A"]

    bad = admin_client.get("/admin/products", params={"isActive": "perhaps"})
    assert bad.status_code == 400

    categories = admin_client.get("/admin/products/categories").json()
    assert categories == {"categories": ["SHIRTS", "SHOES"]}


def test_toggle_endpoint(admin_client, product_data):
    product_id = admin_client.post("/admin/products", json=product_data()).json()["product"]["id"]

    flipped = admin_client.post(f"/admin/products/{product_id}/toggle", json={"field": "is_active"})
    assert flipped.status_code == 200
    assert flipped.json()["product"]["is_active"] is False

    rejected = admin_client.post(f"/admin/products/{product_id}/toggle", json={"field": "is_visible", "value": True})
    assert rejected.status_code == 400
    assert "field" in rejected.json()["detail"]["errors"]


def test_bulk_endpoints_report_counts(admin_client, product_data):
    ids = [
        admin_client.post("/admin/products", json=product_data(name=name)).json()["product"]["id"]
        for name in ("A", "B")
    ]

    toggled = admin_client.post(
        "/admin/products/bulk-toggle", json={"ids": ids + ["ghost"], "is_active": "false"}
    ).json()
    assert (toggled["succeeded"], toggled["requested"]) == (2, 3)

    deleted = admin_client.post("/admin/products/bulk-delete", json={"ids": ids}).json()
    assert (deleted["succeeded"], deleted["requested"]) == (2, 2)
    assert admin_client.get("/admin/products").json()["total"] == 0


def test_bulk_toggle_rejects_unreadable_flag_with_field_errors(admin_client, product_data):
    product_id = admin_client.post("/admin/products", json=product_data()).json()["product"]["id"]

    response = admin_client.post("/admin/products/bulk-toggle", json={"ids": [product_id], "is_active": "maybe"})

    assert response.status_code == 400
    assert "is_active" in response.json()["detail"]["errors"]
    assert admin_client.get(f"/admin/products/{product_id}").json()["is_active"] is True

    toggled = admin_client.post(f"/admin/products/{product_id}/toggle", json={"field": "is_active", "value": "maybe"})
    assert toggled.status_code == 400
    assert "value" in toggled.json()["detail"]["errors"]


def test_settings_round_trip(admin_client):
    initial = admin_client.get("/admin/settings")
    assert initial.status_code == 200
    assert initial.json()["id"] == 1

    response = admin_client.put(
        "/admin/settings",
        json={
            "site_name": "Nuvyra Store",
            "default_seo_title": "Nuvyra",
            "default_seo_description": "Fashion",
            "seo_keywords": "a, b ,c",
            "banner_images": "u1\nu2\n",
        },
    )

    assert response.status_code == 200
    stored = admin_client.get("/admin/settings").json()
    assert set(stored["seo_keywords"]) == {"a", "b", "c"}
    assert stored["banner_images"] == ["u1", "u2"]
    assert stored["updated_at"] is not None


def test_image_upload_without_image_host(admin_client):
    response = admin_client.post(
        "/admin/products/images",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400


def test_data_integrity_is_disabled_by_default(admin_client):
    response = admin_client.post("/admin/data-integrity/scan")
    assert response.status_code == 503
    assert "disabled" in response.json()["detail"]["message"]
