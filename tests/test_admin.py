"""
Tests for the admin API: token auth, mockup queue control, change review and
order actions.
"""
from factories import add_remote_product, remote_variant
from services.printful_client import PrintfulApiError


def seed_price_change(client, fake_client, admin_headers):
    add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11, price="25.00")])
    client.post("/admin/printful/sync/products", headers=admin_headers)
    fake_client.sync_product_details[1]["sync_variants"][0]["retail_price"] = "29.00"
    client.post("/admin/printful/sync/products", headers=admin_headers)
    changes = client.get("/admin/printful/changes", headers=admin_headers).get_json()["changes"]
    return {c["field_name"]: c for c in changes}


class TestAdminAuth:
    def test_requires_token(self, client):
        assert client.get("/admin/printful/sync/history").status_code == 401
        assert client.post("/admin/printful/mockups", json={}).status_code == 401

    def test_wrong_token(self, client):
        response = client.get("/admin/printful/sync/history", headers={"X-ADMIN-TOKEN": "nope"})
        assert response.status_code == 401


class TestAdminMockups:
    def test_enqueue_views(self, client, services, admin_headers):
        response = client.post("/admin/printful/mockups", json={
            "variant_id": "v-1",
            "printful_product_id": 71,
            "printful_variant_id": 4011,
            "views": ["front", "back", "left_front"],
        }, headers=admin_headers)

        assert response.status_code == 202
        task_ids = response.get_json()["task_ids"]
        assert len(task_ids) == 3

        status = client.get("/admin/printful/mockups/status/v-1", headers=admin_headers).get_json()
        assert status["total"] == 3
        assert status["counts"]["completed"] == 2
        assert status["counts"]["rate_limited"] == 1

    def test_enqueue_validates_fields(self, client, admin_headers):
        response = client.post("/admin/printful/mockups", json={"variant_id": "v-1"}, headers=admin_headers)

        assert response.status_code == 400
        assert "printful_product_id" in response.get_json()["error"]

    def test_remove_pending_task(self, client, services, admin_headers):
        queue = services.mockup_queue
        pending = queue.enqueue("v-1", 71, 4011, "front", start=False)

        assert client.delete(f"/admin/printful/mockups/{pending}", headers=admin_headers).status_code == 200
        assert client.delete(f"/admin/printful/mockups/{pending}", headers=admin_headers).status_code == 409


class TestAdminSync:
    def test_manual_sync_and_history(self, client, fake_client, admin_headers):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11)])

        response = client.post("/admin/printful/sync/products", headers=admin_headers)
        history = client.get("/admin/printful/sync/history", headers=admin_headers).get_json()["history"]

        assert response.status_code == 200
        assert response.get_json()["success"] is True
        assert history[0]["status"] == "success"
        assert history[0]["sync_type"] == "full"

    def test_category_sync(self, client, fake_client, admin_headers):
        fake_client.categories = [{"id": 4, "title": "Hats"}]

        response = client.post("/admin/printful/sync/categories", headers=admin_headers)

        assert response.get_json()["added"] == 1

    def test_apply_change(self, client, fake_client, repository, admin_headers):
        changes = seed_price_change(client, fake_client, admin_headers)
        change_id = changes["retail_price"]["id"]

        response = client.post(
            f"/admin/printful/changes/{change_id}/apply",
            json={"reviewer": "ops@example.com"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["change"]["status"] == "applied"
        assert str(repository.find_variant_by_remote_id(11)["retail_price"]) == "29.00"

    def test_reject_then_apply_conflicts(self, client, fake_client, admin_headers):
        changes = seed_price_change(client, fake_client, admin_headers)
        change_id = changes["price"]["id"]

        rejected = client.post(f"/admin/printful/changes/{change_id}/reject", headers=admin_headers)
        applied = client.post(f"/admin/printful/changes/{change_id}/apply", headers=admin_headers)

        assert rejected.get_json()["change"]["status"] == "rejected"
        assert rejected.get_json()["change"]["reviewed_by"] == "admin"
        assert applied.status_code == 409

    def test_unknown_change_conflicts(self, client, admin_headers):
        response = client.post("/admin/printful/changes/999/approve", headers=admin_headers)

        assert response.status_code == 409

    def test_printful_errors_are_translated(self, client, services, admin_headers):
        def broken():
            raise PrintfulApiError(404, "Not found", "NotFound")

        services.synchronizer.sync_categories = broken

        response = client.post("/admin/printful/sync/categories", headers=admin_headers)

        assert response.status_code == 404
        assert response.get_json() == {"success": False, "error": "Not found", "reason": "NotFound"}


class TestAdminCategories:
    def test_list_and_map_category(self, client, fake_client, repository, admin_headers):
        fake_client.categories = [{"id": 24, "title": "Hats"}]
        client.post("/admin/printful/sync/categories", headers=admin_headers)

        response = client.put(
            "/admin/printful/categories/24",
            json={"local_category_id": "cat-headwear", "is_active": True},
            headers=admin_headers,
        )
        listed = client.get("/admin/printful/categories", headers=admin_headers).get_json()["categories"]

        assert response.status_code == 200
        assert response.get_json()["category"]["local_category_id"] == "cat-headwear"
        assert listed[0]["printful_category_id"] == 24
        assert listed[0]["local_category_id"] == "cat-headwear"

    def test_unmap_with_null(self, client, fake_client, repository, admin_headers):
        fake_client.categories = [{"id": 24, "title": "Hats"}]
        client.post("/admin/printful/sync/categories", headers=admin_headers)
        client.put("/admin/printful/categories/24", json={"local_category_id": "cat-headwear"}, headers=admin_headers)

        response = client.put(
            "/admin/printful/categories/24",
            json={"local_category_id": None, "is_active": False},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert repository.categories[24]["local_category_id"] is None
        assert repository.categories[24]["is_active"] is False

    def test_unknown_category_is_404(self, client, admin_headers):
        response = client.put("/admin/printful/categories/999", json={"local_category_id": "x"}, headers=admin_headers)

        assert response.status_code == 404

    def test_invalid_body_is_400(self, client, admin_headers):
        response = client.put("/admin/printful/categories/24", json={"is_active": "yes"}, headers=admin_headers)

        assert response.status_code == 400


class TestAdminOrders:
    def test_submit_refresh_cancel(self, client, fake_client, repository, admin_headers):
        variant = repository.upsert_variant({"product_id": "p-1", "printful_id": 555001, "name": "Tee"})
        order_id = repository.add_order(items=[{"variant_id": variant["id"], "quantity": 1, "price": 20}])

        submitted = client.post(f"/admin/printful/orders/{order_id}/submit", headers=admin_headers)
        assert submitted.status_code == 200
        assert submitted.get_json()["success"] is True
        printful_id = submitted.get_json()["printful_order_id"]

        fake_client.orders[printful_id]["status"] = "inprocess"
        refreshed = client.post(f"/admin/printful/orders/{order_id}/refresh", headers=admin_headers)
        assert refreshed.get_json()["order"]["status"] == "processing"

        cancelled = client.post(f"/admin/printful/orders/{order_id}/cancel", headers=admin_headers)
        assert cancelled.get_json()["order"]["status"] == "cancelled"

    def test_submit_failure_is_422(self, client, repository, admin_headers):
        order_id = repository.add_order(status="pending")

        response = client.post(f"/admin/printful/orders/{order_id}/submit", headers=admin_headers)

        assert response.status_code == 422
        assert response.get_json()["success"] is False
