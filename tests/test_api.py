"""
Тесты HTTP API: витрина, заявки, админка и старое API.
"""

from storefront.db.models import Request


def test_healthz(client):
    assert client.get("/healthz").json()["status"] == "ok"


class TestPublicApi:
    def test_products_page_and_clamp(self, client, make_category, make_product):
        category = make_category()
        for i in range(25):
            make_product(f"Тарелка {i}", category_id=category.id)

        data = client.get("/api/v1/products", params={"category": "keramika", "page": 3}).json()
        assert data["page"] == 2
        assert data["total"] == 25
        assert data["total_pages"] == 2
        assert len(data["items"]) == 5

    def test_unknown_category(self, client):
        data = client.get("/api/v1/products", params={"category": "nope"}).json()
        assert data == {"items": [], "total": 0, "page": 1, "page_size": 20, "total_pages": 1}

    def test_product_detail(self, client, make_product):
        product = make_product("Ваза", price=120)
        assert client.get(f"/api/v1/products/{product.id}").json()["price"] == 120.0
        assert client.get("/api/v1/products/999").status_code == 404

    def test_categories_presence(self, client, make_category, make_product):
        full = make_category("Керамика", "keramika")
        make_category("Пусто", "pusto")
        make_product(category_id=full.id)

        data = client.get("/api/v1/categories").json()
        assert {c["slug"]: c["has_products"] for c in data} == {"keramika": True, "pusto": False}
        visible = client.get("/api/v1/categories", params={"only_with_products": True}).json()
        assert [c["slug"] for c in visible] == ["keramika"]

    def test_storefront(self, client, make_product):
        for i in range(10):
            make_product(f"Товар {i}")
        data = client.get("/api/v1/storefront", params={"category": "all"}).json()
        assert data["category"] is None
        assert len(data["preview"]["items"]) == 8
        assert data["catalog"]["total"] == 10


class TestInquiries:
    def test_create_request_cleans_phone_and_sets_prefill(self, client, db, make_product):
        product = make_product()
        response = client.post(
            "/api/v1/requests",
            json={
                "client_name": "Анна",
                "client_phone": "+7 (999) 000-11-22",
                "client_message": "Есть ли в наличии?",
                "product_id": product.id,
            },
        )
        assert response.status_code == 201
        assert response.json()["message"] == "Заявка отправлена"

        stored = db.query(Request).one()
        assert stored.client_phone == "+79990001122"
        assert stored.status == "new"

        prefill = client.get("/api/v1/requests/prefill").json()
        assert prefill == {"client_name": "Анна", "client_phone": "+79990001122"}

    def test_short_phone_rejected(self, client, db):
        response = client.post("/api/v1/requests", json={"client_phone": "12-3"})
        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Введите корректный номер телефона."
        assert body["notification"]["title"] == "Введите корректный номер телефона."
        assert db.query(Request).count() == 0

    def test_newsletter_phone_only(self, client, db):
        assert client.post("/api/v1/requests", json={"client_phone": "+79990001122"}).status_code == 201
        assert db.query(Request).one().client_name is None


class TestAdminApi:
    def test_category_crud(self, client):
        created = client.post("/api/v1/admin/categories", json={"name": "Керамика"})
        assert created.status_code == 201
        category = created.json()["category"]
        assert category["slug"] == "keramika"

        updated = client.put(
            f"/api/v1/admin/categories/{category['id']}", json={"name": "Керамика", "slug": "ceramics"}
        ).json()
        assert updated["category"]["slug"] == "ceramics"

        duplicate = client.post("/api/v1/admin/categories", json={"name": "Ceramics"})
        assert duplicate.status_code == 409
        assert duplicate.json()["notification"]["variant"] == "destructive"

        assert client.delete(f"/api/v1/admin/categories/{category['id']}").json()["message"] == "Категория удалена"
        assert client.get("/api/v1/admin/categories").json() == []

    def test_create_product_with_image(self, client, png_bytes, storage):
        response = client.post(
            "/api/v1/admin/products",
            data={"name": "Тарелка", "price": "45,5", "category_id": "__none__"},
            files={"image": ("plate.png", png_bytes, "image/png")},
        )
        assert response.status_code == 201
        product = response.json()["product"]
        assert product["price"] == 45.5
        assert product["image"].endswith(".jpg")
        assert storage.file_exists(storage.key_from_url(product["image"]))

        listed = client.get("/api/v1/admin/products").json()
        assert listed["total"] == 1

    def test_invalid_price_returns_400(self, client):
        response = client.post("/api/v1/admin/products", data={"name": "Тарелка", "price": "abc"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Цена должна быть числом"

    def test_unsupported_upload_rejected(self, client):
        response = client.post(
            "/api/v1/admin/products",
            data={"name": "Тарелка"},
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    def test_delete_confirmation(self, client, admin):
        state = client.post("/api/v1/admin/delete-confirmation/product/5").json()
        assert state["row_id"] == 5

        admin.delete_guard.begin("product", 5)
        assert client.delete("/api/v1/admin/delete-confirmation/product").status_code == 409
        assert client.delete("/api/v1/admin/products/5").status_code == 409
        admin.delete_guard.finish("product")

        assert client.delete("/api/v1/admin/delete-confirmation/product").json()["row_id"] is None

    def test_draft_flow(self, client, png_bytes, make_category):
        category = make_category()
        draft = client.post("/api/v1/admin/drafts", json={}).json()
        draft_id = draft["draft_id"]
        assert draft["image"]["state"] == "idle"

        client.put(
            f"/api/v1/admin/drafts/{draft_id}/form",
            json={"name": "Тарелка", "category_id": str(category.id), "price": "45,5"},
        )
        uploaded = client.post(
            f"/api/v1/admin/drafts/{draft_id}/image",
            files={"file": ("plate.png", png_bytes, "image/png")},
        ).json()
        assert uploaded["image"]["state"] == "ready"
        assert uploaded["image"]["has_preview"] is True

        preview = client.get(f"/api/v1/admin/drafts/{draft_id}/preview")
        assert preview.status_code == 200
        assert preview.headers["content-type"] == "image/jpeg"

        saved = client.post(f"/api/v1/admin/drafts/{draft_id}/save").json()
        assert saved["product"]["category_id"] == category.id
        assert saved["product"]["price"] == 45.5
        assert client.get(f"/api/v1/admin/drafts/{draft_id}").status_code == 404

    def test_requests_and_status(self, client, db, make_product):
        product = make_product("Ваза")
        db.add(Request(client_phone="+79990001122", product_id=product.id))
        db.commit()
        request_id = db.query(Request).one().id

        page = client.get("/api/v1/admin/requests").json()
        assert page["total"] == 1
        assert page["products_map"][str(product.id)]["name"] == "Ваза"

        result = client.put(f"/api/v1/admin/requests/{request_id}/status", json={"status": "done"}).json()
        assert result["request"]["status"] == "done"

        invalid = client.put(f"/api/v1/admin/requests/{request_id}/status", json={"status": "lost"})
        assert invalid.status_code == 400

    def test_stats(self, client, make_category, make_product):
        category = make_category()
        make_product(category_id=category.id, in_stock=False)

        products = client.get("/api/v1/admin/stats/products").json()
        assert products["total"] == 1
        assert products["per_category"][0]["out_of_stock"] == 1

        requests = client.get("/api/v1/admin/stats/requests").json()
        assert requests == {"total_all": 0, "by_status_all": {"new": 0, "processing": 0, "done": 0}}

        month = client.get("/api/v1/admin/stats/requests/month", params={"month": "2026-02"}).json()
        assert len(month["daily"]) == 28
        assert client.get("/api/v1/admin/stats/requests/month", params={"month": "bad"}).status_code == 400
        assert client.get("/api/v1/admin/stats/requests/month", params={"month": "9999-12"}).status_code == 400

    def test_refresh_and_notifications(self, client, make_category):
        make_category()
        client.post("/api/v1/admin/categories", json={"name": "Стекло"})

        overview = client.post("/api/v1/admin/refresh").json()
        assert overview["categories_total"] == 2

        notifications = client.get("/api/v1/admin/notifications").json()
        assert notifications[0]["title"] == "Категория создана"
        assert client.get("/api/v1/admin/notifications").json() == []


class TestLegacyApi:
    def test_legacy_shapes(self, client, make_category, make_product):
        category = make_category("Ceramics", "ceramics")
        make_product("Artisan Clay Plate", category_id=category.id, price=45, description="Hand-thrown")

        products = client.get("/api/products").json()
        assert products[0]["categoryId"] == category.id
        assert products[0]["description"] == "Hand-thrown"
        assert "category_id" not in products[0]

        assert client.get("/api/products/category/ceramics").json()[0]["name"] == "Artisan Clay Plate"
        assert client.get("/api/products/category/unknown").json() == []
        assert client.get("/api/categories").json() == [{"id": category.id, "name": "Ceramics", "slug": "ceramics"}]
