"""
Tests for the catalog synchronizer: idempotent re-runs, staged changes,
history rows and change review.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from constants import (
    SYNC_STATUS_SUCCESS,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_FAILED,
    CHANGE_STATUS_PENDING_REVIEW,
    CHANGE_STATUS_APPROVED,
    CHANGE_STATUS_REJECTED,
    CHANGE_STATUS_APPLIED,
)
from factories import add_remote_product, remote_variant
from services.printful_client import PrintfulApiError
from services.product_sync import CategoryMappingError, ChangeReviewError, prices_differ, to_price, summarize_status


@pytest.fixture
def synchronizer(services):
    return services.synchronizer


def seed_catalog(client):
    add_remote_product(client, 1, "Classic Tee", [
        remote_variant(11, "Classic Tee / Black / M", "25.00"),
        remote_variant(12, "Classic Tee / Black / L", "25.00"),
    ])
    add_remote_product(client, 2, "Logo Mug", [
        remote_variant(21, "Logo Mug / 11 oz", "14.50"),
    ])


class TestHelpers:
    def test_price_tolerance(self):
        assert not prices_differ("25.00", 25.0)
        assert not prices_differ("25.00", "25.01")
        assert prices_differ("25.00", "25.50")
        assert not prices_differ(None, "25.00")

    def test_to_price(self):
        assert to_price("19.999") == Decimal("20.00")
        assert to_price("") is None
        assert to_price("abc") is None

    def test_summarize_status(self):
        assert summarize_status(3, 0) == SYNC_STATUS_SUCCESS
        assert summarize_status(2, 1) == SYNC_STATUS_PARTIAL
        assert summarize_status(0, 2) == SYNC_STATUS_FAILED
        assert summarize_status(0, 0) == SYNC_STATUS_SUCCESS


class TestProductSync:
    def test_first_sync_creates_products_and_variants(self, synchronizer, fake_client, repository):
        seed_catalog(fake_client)

        result = synchronizer.sync_products()

        assert result.status == SYNC_STATUS_SUCCESS
        assert (result.synced_count, result.failed_count) == (2, 0)
        assert len(repository.products) == 2
        assert len(repository.variants) == 3

        tee = repository.find_product_by_remote_id(1)
        assert tee["slug"] == "classic-tee"
        assert tee["published_status"] is False
        assert tee["price"] == Decimal("25.00")

        variant = repository.find_variant_by_remote_id(11)
        assert variant["options"] == {"color": "Black", "size": "M"}
        assert variant["printful_catalog_variant_id"] == 4011
        assert variant["product_id"] == tee["id"]

    def test_second_identical_sync_stages_nothing(self, synchronizer, fake_client, repository):
        seed_catalog(fake_client)

        first = synchronizer.sync_products()
        second = synchronizer.sync_products()

        assert first.status == second.status == SYNC_STATUS_SUCCESS
        assert repository.changes == {}
        assert len(repository.products) == 2
        assert len(repository.variants) == 3

    def test_exactly_one_history_row_per_run(self, synchronizer, fake_client, repository):
        seed_catalog(fake_client)

        result = synchronizer.sync_products()

        assert list(repository.sync_history) == [result.sync_id]
        row = repository.sync_history[result.sync_id]
        assert row["status"] == SYNC_STATUS_SUCCESS
        assert row["products_synced"] == 2
        assert row["completed_at"] is not None

    def test_slug_collision_gets_suffix(self, synchronizer, fake_client, repository):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11)])
        add_remote_product(fake_client, 5, "Classic Tee", [remote_variant(51)])

        synchronizer.sync_products()

        slugs = sorted(p["slug"] for p in repository.products.values())
        assert slugs == ["classic-tee", "classic-tee-5"]

    def test_price_change_is_staged_not_applied(self, synchronizer, fake_client, repository):
        seed_catalog(fake_client)
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"][0]["retail_price"] = "29.00"

        synchronizer.sync_products()

        variant = repository.find_variant_by_remote_id(11)
        assert variant["retail_price"] == Decimal("25.00")

        changes = synchronizer.list_product_changes()
        fields = sorted(c.field_name for c in changes)
        assert fields == ["price", "retail_price"]
        variant_change = next(c for c in changes if c.field_name == "retail_price")
        assert variant_change.severity == "critical"
        assert variant_change.change_type == "price"
        assert (variant_change.old_value, variant_change.new_value) == ("25.00", "29.00")
        assert variant_change.variant_id == variant["id"]

    def test_staged_change_is_not_duplicated(self, synchronizer, fake_client, repository):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11, price="25.00")])
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"][0]["retail_price"] = "29.00"

        synchronizer.sync_products()
        synchronizer.sync_products()

        retail = [c for c in repository.changes.values() if c["field_name"] == "retail_price"]
        assert len(retail) == 1

    def test_stock_change_is_staged(self, synchronizer, fake_client, repository):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11)])
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"][0]["availability_status"] = "discontinued"

        synchronizer.sync_products()

        change = synchronizer.list_product_changes()[0]
        assert change.field_name == "in_stock"
        assert change.change_type == "inventory"
        assert (change.old_value, change.new_value) == ("true", "false")
        assert repository.find_variant_by_remote_id(11)["in_stock"] is True

    def test_vanished_variant_is_staged_for_deactivation(self, synchronizer, fake_client, repository):
        seed_catalog(fake_client)
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"].pop()

        synchronizer.sync_products()

        change = synchronizer.list_product_changes()[0]
        assert change.field_name == "active"
        assert change.change_type == "variant"
        assert change.new_value == "false"
        assert change.variant_id == repository.find_variant_by_remote_id(12)["id"]
        assert repository.find_variant_by_remote_id(12)["is_active"] is True

    def test_metadata_updates_directly(self, synchronizer, fake_client, repository):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11, sku="OLD")])
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"][0]["sku"] = "NEW"
        fake_client.sync_product_details[1]["sync_variants"][0]["name"] = "Classic Tee / Navy / M"

        synchronizer.sync_products()

        variant = repository.find_variant_by_remote_id(11)
        assert variant["sku"] == "NEW"
        assert variant["options"]["color"] == "Navy"
        assert repository.changes == {}

    def test_failing_product_is_isolated(self, synchronizer, fake_client, repository, services):
        seed_catalog(fake_client)
        fake_client.fail_products[2] = PrintfulApiError(500, "boom", "http_error")

        result = synchronizer.sync_products()

        assert result.status == SYNC_STATUS_PARTIAL
        assert (result.synced_count, result.failed_count) == (1, 1)
        assert repository.find_product_by_remote_id(1) is not None
        assert repository.sync_history[result.sync_id]["products_failed"] == 1
        assert services.reporter.events[0]["operation"] == "printful_product_sync_item"

    def test_listing_failure_records_failed_run(self, synchronizer, fake_client, repository, services):
        fake_client.fail_list_with = PrintfulApiError(401, "Unauthorized", "missing_api_key")

        result = synchronizer.sync_products()

        assert not result.success
        assert result.status == SYNC_STATUS_FAILED
        assert "Unauthorized" in result.error
        row = repository.sync_history[result.sync_id]
        assert row["status"] == SYNC_STATUS_FAILED
        assert row["completed_at"] is not None
        assert len(repository.sync_history) == 1
        assert services.reporter.events[0]["operation"] == "printful_product_sync"

    def test_history_failure_is_not_raised(self, synchronizer, fake_client, repository):
        seed_catalog(fake_client)
        repository.fail_on.add("insert_sync_history")

        result = synchronizer.sync_products()

        assert result.status == SYNC_STATUS_FAILED
        assert result.sync_id is None


class TestScheduling:
    def test_runs_when_never_synced(self, synchronizer):
        assert synchronizer.should_run_sync(12)

    def test_skips_recent_success(self, synchronizer, fake_client, clock):
        seed_catalog(fake_client)
        synchronizer.sync_products()
        clock.advance(3600)

        assert not synchronizer.should_run_sync(12)
        assert synchronizer.run_scheduled_sync(12) is None

    def test_runs_after_interval(self, synchronizer, fake_client, clock):
        seed_catalog(fake_client)
        synchronizer.sync_products()
        clock.advance(13 * 3600)

        assert synchronizer.should_run_sync(12)

    def test_failed_runs_do_not_count(self, synchronizer, fake_client):
        fake_client.fail_list_with = PrintfulApiError(500, "down", "http_error")
        synchronizer.sync_products()

        assert synchronizer.should_run_sync(12)

    def test_force_ignores_interval(self, synchronizer, fake_client):
        seed_catalog(fake_client)
        synchronizer.sync_products()

        result = synchronizer.run_scheduled_sync(12, force=True)

        assert result is not None
        assert result.success

    def test_history_listing(self, synchronizer, fake_client):
        seed_catalog(fake_client)
        synchronizer.sync_products()
        synchronizer.sync_products()

        history = synchronizer.list_sync_history()
        assert len(history) == 2
        assert history[0].id > history[1].id


class TestCategorySync:
    def test_adds_new_and_counts_existing(self, synchronizer, fake_client, repository):
        fake_client.categories = [
            {"id": 1, "parent_id": 0, "title": "Men's clothing"},
            {"id": 2, "parent_id": 1, "title": "T-shirts"},
        ]
        first = synchronizer.sync_categories()
        fake_client.categories.append({"id": 3, "parent_id": 0, "title": "Home & living"})

        second = synchronizer.sync_categories()

        assert (first["added"], first["existing"]) == (2, 0)
        assert (second["added"], second["existing"]) == (1, 2)
        assert second["success"]
        assert repository.categories[2]["parent_printful_id"] == 1
        assert repository.categories[1]["parent_printful_id"] is None

    def test_existing_category_name_is_refreshed_and_mapping_kept(self, synchronizer, fake_client, repository):
        fake_client.categories = [{"id": 1, "parent_id": 0, "title": "Men's clothing"}]
        synchronizer.sync_categories()
        synchronizer.update_category_mapping(1, "cat-apparel", is_active=False)
        fake_client.categories = [{"id": 1, "parent_id": 0, "title": "Men's apparel"}]

        result = synchronizer.sync_categories()

        assert (result["added"], result["existing"]) == (0, 1)
        row = repository.categories[1]
        assert row["printful_category_name"] == "Men's apparel"
        assert row["local_category_id"] == "cat-apparel"
        assert row["is_active"] is False

    def test_category_mappings_are_listed_by_name(self, synchronizer, fake_client):
        fake_client.categories = [{"id": 2, "title": "T-shirts"}, {"id": 1, "title": "Hats"}]
        synchronizer.sync_categories()

        names = [c["printful_category_name"] for c in synchronizer.list_category_mappings()]

        assert names == ["Hats", "T-shirts"]

    def test_mapping_an_unknown_category_raises(self, synchronizer):
        with pytest.raises(CategoryMappingError):
            synchronizer.update_category_mapping(404, "cat-x")

    def test_category_runs_are_scoped(self, synchronizer, fake_client, repository):
        fake_client.categories = [{"id": 1, "title": "Men's clothing"}]

        result = synchronizer.sync_categories()

        assert repository.sync_history[result["sync_id"]]["sync_scope"] == "categories"
        # A category run doesn't satisfy the product sync interval.
        assert synchronizer.should_run_sync(12)


class TestChangeReview:
    @pytest.fixture
    def staged(self, synchronizer, fake_client):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11, price="25.00")])
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"][0]["retail_price"] = "29.00"
        synchronizer.sync_products()
        return {c.field_name: c for c in synchronizer.list_product_changes()}

    def test_apply_writes_variant_price(self, synchronizer, repository, staged):
        change = synchronizer.apply_product_change(staged["retail_price"].id, "ops@example.com")

        assert change.status == CHANGE_STATUS_APPLIED
        assert repository.find_variant_by_remote_id(11)["retail_price"] == Decimal("29.00")
        row = repository.get_product_change(change.id)
        assert row["reviewed_by"] == "ops@example.com"
        assert row["reviewed_at"] is not None

    def test_apply_product_level_price(self, synchronizer, repository, staged):
        synchronizer.apply_product_change(staged["price"].id, "ops")

        assert repository.find_product_by_remote_id(1)["price"] == Decimal("29.00")

    def test_applied_price_is_not_restaged(self, synchronizer, repository, staged):
        for change in staged.values():
            synchronizer.apply_product_change(change.id, "ops")

        synchronizer.sync_products()

        assert synchronizer.list_product_changes() == []

    def test_reject_then_apply_is_refused(self, synchronizer, staged):
        change = synchronizer.review_product_change(staged["retail_price"].id, CHANGE_STATUS_REJECTED, "ops")
        assert change.status == CHANGE_STATUS_REJECTED

        with pytest.raises(ChangeReviewError):
            synchronizer.apply_product_change(change.id, "ops")

    def test_approved_change_can_be_applied(self, synchronizer, staged):
        change_id = staged["retail_price"].id
        synchronizer.review_product_change(change_id, CHANGE_STATUS_APPROVED, "ops")

        assert synchronizer.apply_product_change(change_id, "ops").status == CHANGE_STATUS_APPLIED

    def test_double_review_is_refused(self, synchronizer, staged):
        change_id = staged["retail_price"].id
        synchronizer.review_product_change(change_id, CHANGE_STATUS_APPROVED, "ops")

        with pytest.raises(ChangeReviewError):
            synchronizer.review_product_change(change_id, CHANGE_STATUS_REJECTED, "ops")

    def test_unknown_change(self, synchronizer):
        with pytest.raises(ChangeReviewError):
            synchronizer.apply_product_change(999, "ops")

    def test_unknown_decision(self, synchronizer, staged):
        with pytest.raises(ChangeReviewError):
            synchronizer.review_product_change(staged["price"].id, "maybe", "ops")

    def test_apply_deactivation(self, synchronizer, fake_client, repository):
        add_remote_product(fake_client, 1, "Classic Tee", [remote_variant(11), remote_variant(12)])
        synchronizer.sync_products()
        fake_client.sync_product_details[1]["sync_variants"].pop()
        synchronizer.sync_products()
        change = synchronizer.list_product_changes()[0]

        synchronizer.apply_product_change(change.id, "ops")

        assert repository.find_variant_by_remote_id(12)["is_active"] is False
        # Still missing upstream, already inactive locally: nothing new to stage.
        synchronizer.sync_products()
        assert synchronizer.list_product_changes(CHANGE_STATUS_PENDING_REVIEW) == []

    def test_listing_by_status(self, synchronizer, staged):
        synchronizer.review_product_change(staged["price"].id, CHANGE_STATUS_REJECTED, "ops")

        pending = synchronizer.list_product_changes(CHANGE_STATUS_PENDING_REVIEW)
        everything = synchronizer.list_product_changes(None)

        assert [c.field_name for c in pending] == ["retail_price"]
        assert len(everything) == 2
