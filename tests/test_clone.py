"""Tests for the clone module."""

import json
import logging
import threading

import pytest

from tenant_clone.api.memory import MemoryStore
from tenant_clone.clone import (
    PRODUCT_ALLOWED_FIELDS,
    QUICK_CLONE_MAX_PRODUCTS,
    CloneRequest,
    MergeStrategy,
    check_quota,
    classify_error,
    create_categories,
    full_clone,
    get_listing_limit,
    preview_clone,
    quick_clone,
    run_clone,
    select_missing_categories,
    transform_product_for_creation,
)
from tenant_clone.errors import ValidationError
from tenant_clone.output import LOGS_DIR_ENV, CloneLogger, get_logs_dir, setup_logging
from tenant_clone.settings import CATEGORY_SETTINGS_KEY, RetryPolicy, SettingsReconciler
from tests.factories import image_fields, product_fields, seeded_store

SOURCE = "source-tenant"
TARGET = "target-tenant"


def category_names(store: MemoryStore, tenant_id: str) -> set[str]:
    return {c["name"] for c in store.categories if c["user_id"] == tenant_id}


def products_of(store: MemoryStore, tenant_id: str) -> list[dict]:
    return [p for p in store.products if p["user_id"] == tenant_id]


class FailingProductStore(MemoryStore):
    """MemoryStore whose create_product fails on selected calls."""

    def __init__(self, fail_on: set[int]):
        super().__init__()
        self.fail_on = fail_on
        self.create_calls = 0

    def create_product(self, product_data):
        self.create_calls += 1
        if self.create_calls in self.fail_on:
            self.last_error = 'new row violates check constraint "products_price_check"'
            return None
        return super().create_product(product_data)


class TestTransformProductForCreation:
    """Tests for transform_product_for_creation function."""

    def test_strips_system_fields(self):
        """Should drop ids, owner, timestamps and the featured image pointer."""
        product = {
            "id": "prod-1",
            "user_id": SOURCE,
            "created_at": "2024-01-01",
            "updated_at": "2024-01-02",
            "featured_image_url": "https://cdn.example.com/a.jpg",
            "title": "Tênis Runner",
            "price": 199.9,
        }
        result = transform_product_for_creation(product, TARGET)

        assert result == {"user_id": TARGET, "title": "Tênis Runner", "price": 199.9}

    def test_only_whitelisted_fields(self):
        """Should only include fields in PRODUCT_ALLOWED_FIELDS besides the owner."""
        result = transform_product_for_creation(product_fields(internal_notes="x"), TARGET)
        assert set(result) - {"user_id"} <= PRODUCT_ALLOWED_FIELDS

    def test_skips_none_values(self):
        """Should not include fields with None values."""
        result = transform_product_for_creation({"title": "A", "brand": None}, TARGET)
        assert "brand" not in result

    def test_copies_category_list(self):
        """Should not share the category list with the source row."""
        product = {"title": "A", "category": ["Roupas"]}
        result = transform_product_for_creation(product, TARGET)

        result["category"].append("Tênis")
        assert product["category"] == ["Roupas"]

    def test_empty_product(self):
        """Should handle empty product dict."""
        assert transform_product_for_creation({}, TARGET) == {"user_id": TARGET}


class TestClassifyError:
    """Tests for classify_error function."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("duplicate key value violates unique constraint (23505)", "duplicate"),
            ("permission denied for table products (42501)", "permission"),
            ("Tenant not found: abc", "not_found"),
            ("Network error: timeout", "server"),
            ('new row violates check constraint "x"', "validation"),
            ("Image too large (20000000 bytes)", "validation"),
            ("something odd", "unknown"),
            (None, "unknown"),
            ("", "unknown"),
        ],
    )
    def test_classification(self, message, expected):
        """Should map store messages to audit error types."""
        assert classify_error(message) == expected


class TestQuotaHelpers:
    """Tests for get_listing_limit and check_quota."""

    def test_default_limit(self):
        """Should fall back to 50 when the tenant has no limit."""
        assert get_listing_limit({"listing_limit": None}) == 50
        assert get_listing_limit({}) == 50
        assert get_listing_limit({"listing_limit": 200}) == 200

    def test_within_quota(self):
        """Should accept totals up to the limit."""
        assert check_quota(5, 5, 10) is None

    def test_over_quota(self):
        """Should report the arithmetic when the limit is exceeded."""
        message = check_quota(8, 5, 10)
        assert "8 existing + 5" in message
        assert "limit is 10" in message


class TestSelectMissingCategories:
    """Tests for select_missing_categories function."""

    def test_skips_existing_by_key(self):
        """Should ignore categories the target has under another spelling."""
        source = [{"name": "Tênis"}, {"name": "Roupas"}, {"name": "Bonés"}]
        target = [{"name": "tenis"}, {"name": " ROUPAS "}]

        assert select_missing_categories(source, target) == ["Bonés"]

    def test_collapses_source_duplicates(self):
        """Should keep the first source spelling of each key."""
        source = [{"name": "Nike"}, {"name": "NIKE"}]
        assert select_missing_categories(source, []) == ["Nike"]


class TestCreateCategories:
    """Tests for create_categories function."""

    def setup_method(self):
        self.store = MemoryStore()
        self.store.add_tenant(TARGET)
        self.store.insert_categories(TARGET, ["Roupas"])

    def test_inserts_only_new_valid_names(self):
        """Should insert new names and report the rest."""
        outcome = create_categories(self.store, TARGET, ["  Tênis ", "roupas", "x", "TÊNIS"])

        assert outcome.created == ["Tênis"]
        assert outcome.existing == ["roupas"]
        assert outcome.invalid == ["x"]
        assert outcome.duplicates == ["TÊNIS"]
        assert category_names(self.store, TARGET) == {"Roupas", "Tênis"}

    def test_no_valid_names(self):
        """Should raise ValidationError listing the invalid input."""
        with pytest.raises(ValidationError) as exc_info:
            create_categories(self.store, TARGET, ["", "a"])
        assert exc_info.value.invalid == ["", "a"]

    def test_all_existing(self):
        """Should raise when every valid name already exists."""
        with pytest.raises(ValidationError, match="already exist"):
            create_categories(self.store, TARGET, ["ROUPAS"])


class TestRunCloneValidation:
    """Tests for request and tenant validation in run_clone."""

    def setup_method(self):
        self.store = seeded_store(SOURCE, TARGET)

    def test_same_tenant(self):
        """Should refuse to clone a tenant into itself."""
        result = run_clone(self.store, CloneRequest(SOURCE, SOURCE))

        assert result.success is False
        assert "cannot be the same" in result.errors[0]

    def test_nothing_selected(self):
        """Should require categories or products."""
        request = CloneRequest(SOURCE, TARGET, copy_categories=False, copy_products=False)
        result = run_clone(self.store, request)

        assert result.success is False
        assert len(result.errors) == 1

    def test_missing_target(self):
        """Should abort before writing when the target does not exist."""
        self.store.insert_categories(SOURCE, ["Roupas"])
        result = run_clone(self.store, CloneRequest(SOURCE, "ghost"))

        assert result.success is False
        assert "Target tenant not found" in result.errors[0]
        assert category_names(self.store, "ghost") == set()

    def test_missing_tenant_id(self):
        """Should abort with a result instead of raising when an id is None."""
        result = run_clone(self.store, CloneRequest(None, TARGET))

        assert result.success is False
        assert result.errors == ["Missing source or target tenant id"]


class TestQuota:
    """Tests for the listing limit pre-flight."""

    def test_quota_abort_writes_nothing(self):
        """Should abort with one error and leave the target untouched."""
        store = seeded_store(SOURCE, TARGET, target_limit=10)
        store.insert_categories(SOURCE, ["Roupas", "Tênis"])
        for _ in range(8):
            store.add_product(TARGET, **product_fields())
        for _ in range(5):
            store.add_product(SOURCE, **product_fields(category=["Roupas"]))

        result = run_clone(store, CloneRequest(SOURCE, TARGET, max_products=1000))

        assert result.success is False
        assert result.products_cloned == 0
        assert result.categories_cloned == 0
        assert len(result.errors) == 1
        assert "Listing limit exceeded" in result.errors[0]
        assert category_names(store, TARGET) == set()
        assert len(products_of(store, TARGET)) == 8
        assert TARGET not in store.settings

    def test_cap_counts_toward_quota(self):
        """Should only count products that will actually be copied."""
        store = seeded_store(SOURCE, TARGET, target_limit=10)
        for _ in range(8):
            store.add_product(TARGET, **product_fields())
        for _ in range(5):
            store.add_product(SOURCE, **product_fields())

        result = run_clone(store, CloneRequest(SOURCE, TARGET, copy_images=False, max_products=2))

        assert result.success is True
        assert result.products_cloned == 2
        assert len(products_of(store, TARGET)) == 10

    def test_replace_ignores_existing_products(self):
        """Should not count products that replace will delete."""
        store = seeded_store(SOURCE, TARGET, target_limit=10)
        for _ in range(8):
            store.add_product(TARGET, **product_fields())
        for _ in range(5):
            store.add_product(SOURCE, **product_fields())

        request = CloneRequest(SOURCE, TARGET, merge_strategy=MergeStrategy.REPLACE)
        result = run_clone(store, request)

        assert result.success is True
        assert len(products_of(store, TARGET)) == 5


class TestMergeClone:
    """Tests for merge clones."""

    def setup_method(self):
        self.store = seeded_store(SOURCE, TARGET)

    def test_adds_only_missing_categories(self):
        """Should add source categories the target does not have."""
        self.store.insert_categories(SOURCE, ["Tênis", "Roupas"])
        self.store.insert_categories(TARGET, ["Roupas"])

        result = run_clone(self.store, CloneRequest(SOURCE, TARGET, copy_products=False))

        assert result.success is True
        assert result.categories_cloned == 1
        assert category_names(self.store, TARGET) == {"Roupas", "Tênis"}

    def test_partial_product_failure(self):
        """Should record a failed product and keep going."""
        store = FailingProductStore(fail_on={2})
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        for _ in range(3):
            store.add_product(SOURCE, **product_fields(category=["Roupas"]))

        result = run_clone(store, CloneRequest(SOURCE, TARGET, copy_categories=False))

        assert result.success is True
        assert result.products_cloned == 2
        assert result.skipped == 1
        assert len(result.errors) == 1
        assert "check constraint" in result.errors[0]

    def test_keeps_existing_target_rows(self):
        """Should add to the target without deleting anything."""
        existing = self.store.add_product(TARGET, **product_fields(title="Old Product"))
        self.store.add_product(SOURCE, **product_fields(title="New Product"))

        result = run_clone(self.store, CloneRequest(SOURCE, TARGET))

        titles = {p["title"] for p in products_of(self.store, TARGET)}
        assert result.success is True
        assert titles == {"Old Product", "New Product"}
        assert existing in self.store.products

    def test_rerun_adds_fresh_copies(self):
        """Should copy products again on a repeated merge."""
        self.store.add_product(SOURCE, **product_fields())

        run_clone(self.store, CloneRequest(SOURCE, TARGET))
        run_clone(self.store, CloneRequest(SOURCE, TARGET))

        assert len(products_of(self.store, TARGET)) == 2

    def test_reconciles_target_settings(self):
        """Should rebuild the target's category display settings."""
        self.store.add_product(SOURCE, **product_fields(category=["Tênis", "Roupas"]))

        run_clone(self.store, CloneRequest(SOURCE, TARGET))

        entries = self.store.settings[TARGET][CATEGORY_SETTINGS_KEY]
        assert [e["category"] for e in entries] == ["Roupas", "Tênis"]
        assert all(e["enabled"] for e in entries)

    def test_settings_failure_is_non_critical(self):
        """Should report a settings sync failure without failing the clone."""

        class NoSettingsWrites(MemoryStore):
            def upsert_settings(self, tenant_id, settings):
                self.last_error = "Server error (503)"
                return False

        store = NoSettingsWrites()
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        store.add_product(SOURCE, **product_fields(category=["Roupas"]))
        reconciler = SettingsReconciler(store, RetryPolicy(sleep=lambda seconds: None))

        result = run_clone(store, CloneRequest(SOURCE, TARGET), reconciler=reconciler)

        assert result.success is True
        assert result.products_cloned == 1
        assert len(result.errors) == 1
        assert "non-critical" in result.errors[0]

    def test_category_insert_failure_still_copies_products(self):
        """Should record a failed category insert and go on with products."""

        class NoCategoryInserts(MemoryStore):
            def insert_categories(self, tenant_id, names):
                self.last_error = "duplicate key value violates unique constraint (23505)"
                return None

        store = NoCategoryInserts()
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        store.categories.append({"id": "cat-src", "user_id": SOURCE, "name": "Roupas"})
        store.add_product(SOURCE, **product_fields(category=["Roupas"]))
        store.add_product(SOURCE, **product_fields(category=["Roupas"]))

        result = run_clone(store, CloneRequest(SOURCE, TARGET))

        assert result.success is True
        assert result.categories_cloned == 0
        assert result.products_cloned == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to clone categories")
        assert category_names(store, TARGET) == set()


class TestReplaceClone:
    """Tests for replace clones."""

    def test_target_data_replaced(self):
        """Should leave only source-derived categories, products and images."""
        store = seeded_store(SOURCE, TARGET)
        store.insert_categories(TARGET, ["Old Category"])
        old = store.add_product(TARGET, images=[image_fields()], **product_fields(title="Old"))
        store.insert_categories(SOURCE, ["Roupas"])
        store.add_product(SOURCE, images=[image_fields(featured=True)], **product_fields(title="New"))

        request = CloneRequest(SOURCE, TARGET, merge_strategy=MergeStrategy.REPLACE)
        result = run_clone(store, request)

        assert result.success is True
        assert category_names(store, TARGET) == {"Roupas"}
        assert [p["title"] for p in products_of(store, TARGET)] == ["New"]
        assert not [i for i in store.images if i["product_id"] == old["id"]]

    def test_failed_wipe_rechecks_quota(self):
        """Should abort when undeleted target products leave no room."""

        class UndeletableProducts(MemoryStore):
            def delete_products(self, tenant_id):
                self.last_error = "permission denied (42501)"
                return False

        store = UndeletableProducts()
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET, listing_limit=5)
        for _ in range(4):
            store.add_product(TARGET, **product_fields())
        for _ in range(3):
            store.add_product(SOURCE, **product_fields())

        request = CloneRequest(SOURCE, TARGET, merge_strategy=MergeStrategy.REPLACE)
        result = run_clone(store, request)

        assert result.success is False
        assert result.products_cloned == 0
        assert any("Listing limit exceeded" in e for e in result.errors)


class TestImages:
    """Tests for image copying."""

    def setup_method(self):
        self.store = seeded_store(SOURCE, TARGET)
        self.images = [image_fields(), image_fields(featured=True), image_fields(featured=True)]
        self.store.add_product(SOURCE, images=self.images, **product_fields())

    def new_product(self) -> dict:
        return products_of(self.store, TARGET)[0]

    def new_images(self) -> list[dict]:
        new_id = self.new_product()["id"]
        return [i for i in self.store.images if i["product_id"] == new_id]

    def test_reuses_source_urls(self):
        """Should point new image rows at the source URLs by default."""
        result = run_clone(self.store, CloneRequest(SOURCE, TARGET))

        assert result.images_cloned == 3
        assert [i["url"] for i in self.new_images()] == [i["url"] for i in self.images]
        assert self.store.objects == {}

    def test_physical_duplicate(self):
        """Should copy image files when physical duplication is requested."""
        result = run_clone(self.store, CloneRequest(SOURCE, TARGET, physical_duplicate=True))

        urls = [i["url"] for i in self.new_images()]
        assert result.images_cloned == 3
        assert all(url.startswith("memory://products/") for url in urls)
        assert [self.store.objects[url] for url in urls] == [i["url"] for i in self.images]

    def test_first_featured_image_wins(self):
        """Should set the featured pointer to the first featured image."""
        run_clone(self.store, CloneRequest(SOURCE, TARGET))

        assert self.new_product()["featured_image_url"] == self.images[1]["url"]

    def test_images_skipped(self):
        """Should not copy images when disabled."""
        result = run_clone(self.store, CloneRequest(SOURCE, TARGET, copy_images=False))

        assert result.images_cloned == 0
        assert self.new_images() == []
        assert "featured_image_url" not in self.new_product()

    def test_image_failure_is_soft(self):
        """Should keep the product when an image copy fails."""

        class BrokenDuplicates(MemoryStore):
            def duplicate_image(self, url, product_id):
                self.last_error = "Image too large (11000000 bytes)"
                return None

        store = BrokenDuplicates()
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        store.add_product(SOURCE, images=[image_fields()], **product_fields())

        result = run_clone(store, CloneRequest(SOURCE, TARGET, physical_duplicate=True))

        assert result.success is True
        assert result.products_cloned == 1
        assert result.images_cloned == 0
        assert "too large" in result.errors[0]

    def test_failed_image_row_removes_copied_file(self):
        """Should delete the copied file when its image row cannot be created."""

        class NoImageRows(MemoryStore):
            def create_image(self, image_data):
                self.last_error = "permission denied for table product_images (42501)"
                return None

        store = NoImageRows()
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        store.add_product(SOURCE, images=[image_fields(), image_fields()], **product_fields())

        result = run_clone(store, CloneRequest(SOURCE, TARGET, physical_duplicate=True))

        assert result.success is True
        assert result.images_cloned == 0
        assert len(result.errors) == 2
        assert store.objects == {}

    def test_failed_image_row_keeps_shared_url(self):
        """Should not delete anything when the source URL was reused."""

        class NoImageRows(MemoryStore):
            def create_image(self, image_data):
                self.last_error = "permission denied (42501)"
                return None

            def delete_object(self, url):
                raise AssertionError(f"unexpected delete of {url}")

        store = NoImageRows()
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        store.add_product(SOURCE, images=[image_fields()], **product_fields())

        result = run_clone(store, CloneRequest(SOURCE, TARGET))

        assert result.images_cloned == 0
        assert len(result.errors) == 1


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_stops_between_products(self):
        """Should stop after the current product and keep partial counts."""
        store = seeded_store(SOURCE, TARGET)
        for _ in range(3):
            store.add_product(SOURCE, **product_fields())
        cancel = threading.Event()

        def on_progress(update):
            if update.message.startswith("Cloning product 1/"):
                cancel.set()

        request = CloneRequest(SOURCE, TARGET, copy_images=False)
        result = run_clone(store, request, progress=on_progress, cancel=cancel)

        assert result.cancelled is True
        assert result.success is False
        assert result.products_cloned == 1
        assert len(products_of(store, TARGET)) == 1
        assert TARGET not in store.settings


class TestProgress:
    """Tests for progress reporting."""

    def test_reports_monotonic_progress(self):
        """Should report steps from validation to completion."""
        store = seeded_store(SOURCE, TARGET)
        store.insert_categories(SOURCE, ["Roupas"])
        for _ in range(4):
            store.add_product(SOURCE, **product_fields())
        updates = []

        run_clone(store, CloneRequest(SOURCE, TARGET), progress=updates.append)

        percentages = [u.percentage for u in updates]
        assert percentages == sorted(percentages)
        assert updates[0].step == 1
        assert updates[-1].percentage == 100
        assert all(u.total_steps == 10 for u in updates)


class TestPresets:
    """Tests for quick_clone and full_clone."""

    def test_quick_clone_caps_products_without_images(self):
        """Should copy at most 50 products, no images and no settings."""
        store = seeded_store(SOURCE, TARGET, target_limit=500)
        for _ in range(QUICK_CLONE_MAX_PRODUCTS + 10):
            store.add_product(SOURCE, images=[image_fields(featured=True)], **product_fields())

        result = quick_clone(store, SOURCE, TARGET)

        assert result.success is True
        assert result.products_cloned == QUICK_CLONE_MAX_PRODUCTS
        assert result.images_cloned == 0
        assert TARGET not in store.settings

    def test_full_clone_copies_images(self):
        """Should copy images and reconcile settings."""
        store = seeded_store(SOURCE, TARGET)
        store.add_product(SOURCE, images=[image_fields()], **product_fields(category=["Roupas"]))

        result = full_clone(store, SOURCE, TARGET)

        assert result.images_cloned == 1
        assert store.settings[TARGET][CATEGORY_SETTINGS_KEY][0]["category"] == "Roupas"


class TestPreviewClone:
    """Tests for preview_clone function."""

    def test_reports_stats_and_quota_warning(self):
        """Should warn about the quota without writing anything."""
        store = seeded_store(SOURCE, TARGET, target_limit=10)
        store.insert_categories(SOURCE, ["Roupas"])
        for _ in range(8):
            store.add_product(TARGET, **product_fields())
        for _ in range(5):
            store.add_product(SOURCE, **product_fields())

        preview = preview_clone(store, CloneRequest(SOURCE, TARGET))

        assert preview.valid is False
        assert preview.source_stats == {"categories": 1, "products": 5}
        assert preview.target_stats == {"categories": 0, "products": 8, "limit": 10}
        assert any("Listing limit exceeded" in w for w in preview.warnings)
        assert len(products_of(store, TARGET)) == 8

    def test_empty_source(self):
        """Should warn when the source has nothing to copy."""
        preview = preview_clone(seeded_store(SOURCE, TARGET), CloneRequest(SOURCE, TARGET))

        assert preview.valid is False
        assert len(preview.warnings) == 2

    def test_valid_clone(self):
        """Should report a clean preview when everything fits."""
        store = seeded_store(SOURCE, TARGET)
        store.insert_categories(SOURCE, ["Roupas"])
        store.add_product(SOURCE, **product_fields())

        assert preview_clone(store, CloneRequest(SOURCE, TARGET)).valid is True


class TestCloneLogger:
    """Tests for the JSON audit log written during a clone."""

    def test_records_operations_and_status(self, tmp_path):
        """Should record successes, failures and the final status."""
        store = FailingProductStore(fail_on={1})
        store.add_tenant(SOURCE)
        store.add_tenant(TARGET)
        store.insert_categories(SOURCE, ["Roupas"])
        store.add_product(SOURCE, **product_fields(title="Camiseta Básica"))
        store.add_product(SOURCE, **product_fields(title="Boné Aba Reta"))
        clone_logger = CloneLogger(SOURCE, TARGET, output_dir=tmp_path)

        run_clone(store, CloneRequest(SOURCE, TARGET), clone_logger=clone_logger)

        data = json.loads(clone_logger.filepath.read_text())
        assert data["metadata"]["status"] == "completed"
        assert data["metadata"]["result"]["products_cloned"] == 1
        assert data["summary"]["categories"] == {"success": 1, "failed": 0}
        assert data["summary"]["products"] == {"success": 1, "failed": 1}
        assert data["error_summary"]["products"] == {"validation": 1}
        assert data["summary"]["settings"]["success"] == 1

    def test_filename(self, tmp_path):
        """Should name the file after both tenants."""
        clone_logger = CloneLogger("abcdefgh-1234", "12345678-abcd", output_dir=tmp_path)

        assert clone_logger.filepath.name.startswith("clone-abcdefgh-to-12345678-")
        assert clone_logger.filepath.suffix == ".json"


class TestSetupLogging:
    """Tests for setup_logging and get_logs_dir."""

    def setup_method(self):
        self.package_logger = logging.getLogger("tenant_clone")

    def teardown_method(self):
        setup_logging(debug=False)
        self.package_logger.setLevel(logging.NOTSET)

    def run_logs(self) -> list:
        return [h for h in self.package_logger.handlers if getattr(h, "tenant_clone_run_log", False)]

    def test_no_file_without_debug(self, tmp_path, monkeypatch):
        """Should not create a log file unless debug is on."""
        monkeypatch.setenv(LOGS_DIR_ENV, str(tmp_path / "logs"))

        assert setup_logging(debug=False, tenant_id=TARGET) is None
        assert self.run_logs() == []
        assert not (tmp_path / "logs").exists()

    def test_file_named_after_command_and_tenant(self, tmp_path, monkeypatch):
        """Should write debug records to a file named after the command and tenant."""
        monkeypatch.setenv(LOGS_DIR_ENV, str(tmp_path))

        log_path = setup_logging(debug=True, tenant_id="3f2a9c1d-7777-4bbb", command="reconcile")
        logging.getLogger("tenant_clone.clone").debug("written to the run log")
        self.run_logs()[0].flush()

        assert log_path.parent == tmp_path
        assert log_path.name.startswith("reconcile-3f2a9c1d-")
        assert "written to the run log" in log_path.read_text(encoding="utf-8")

    def test_repeated_calls_keep_one_handler(self, tmp_path, monkeypatch):
        """Should replace the previous run's file handler."""
        monkeypatch.setenv(LOGS_DIR_ENV, str(tmp_path))

        setup_logging(debug=True, tenant_id=TARGET)
        setup_logging(debug=True, tenant_id=TARGET, command="quick-clone")

        assert len(self.run_logs()) == 1
        assert self.run_logs()[0].baseFilename.startswith(str(tmp_path / "quick-clone-"))

    def test_logs_dir_defaults_to_cwd(self, tmp_path, monkeypatch):
        """Should use ./logs when no directory is configured."""
        monkeypatch.delenv(LOGS_DIR_ENV, raising=False)
        monkeypatch.chdir(tmp_path)

        assert get_logs_dir() == tmp_path / "logs"
        assert (tmp_path / "logs").is_dir()
