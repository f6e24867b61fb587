"""Clone categories, products and images from one tenant into another."""

import logging
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable

from tenant_clone.errors import SettingsStoreError, ValidationError
from tenant_clone.names import comparison_key, dedupe, validate_and_sanitize_batch
from tenant_clone.output import CloneLogger
from tenant_clone.settings import SettingsReconciler
from tenant_clone.stores import CatalogStore, CategoryStore

logger = logging.getLogger(__name__)

DEFAULT_LISTING_LIMIT = 50
DEFAULT_MAX_PRODUCTS = 1000
QUICK_CLONE_MAX_PRODUCTS = 50

# Fields copied onto the new product row (whitelist approach).
# featured_image_url is set after the images have been copied.
PRODUCT_ALLOWED_FIELDS = {
    "title",
    "description",
    "short_description",
    "price",
    "discounted_price",
    "is_starting_price",
    "status",
    "category",
    "brand",
    "model",
    "gender",
    "condition",
    "video_url",
    "featured_offer_price",
    "featured_offer_installment",
    "featured_offer_description",
    "is_visible_on_storefront",
    "external_checkout_url",
    "colors",
    "sizes",
    "display_order",
}


class MergeStrategy(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"


@dataclass
class CloneRequest:
    """What to copy from the source tenant into the target tenant."""

    source_tenant_id: str
    target_tenant_id: str
    copy_categories: bool = True
    copy_products: bool = True
    merge_strategy: MergeStrategy = MergeStrategy.MERGE
    copy_images: bool = True
    # False reuses the source image URLs instead of copying the stored objects
    physical_duplicate: bool = False
    max_products: int = DEFAULT_MAX_PRODUCTS


@dataclass
class CloneResult:
    success: bool = False
    categories_cloned: int = 0
    products_cloned: int = 0
    images_cloned: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: int = 0
    total_processed: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CloneProgress:
    step: int
    total_steps: int
    message: str
    percentage: float


@dataclass
class ClonePreview:
    """Read-only pre-flight view of a clone."""

    valid: bool
    warnings: list[str]
    source_stats: dict[str, int]
    target_stats: dict[str, int]


@dataclass
class CategoryCreation:
    created: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)
    invalid: list[Any] = field(default_factory=list)
    duplicates: list[Any] = field(default_factory=list)


ProgressSink = Callable[[CloneProgress], None]

TOTAL_STEPS = 10


def classify_error(error_message: str | None) -> str:
    """Classify a store error message for the audit log.

    Returns:
        Error type: duplicate, validation, permission, not_found, server, unknown
    """
    msg_lower = error_message.lower() if error_message else ""
    if not msg_lower:
        return "unknown"

    if "duplicate" in msg_lower or "already exists" in msg_lower or "23505" in msg_lower:
        return "duplicate"

    if "permission" in msg_lower or "unauthorized" in msg_lower or "42501" in msg_lower:
        return "permission"

    if "not found" in msg_lower:
        return "not_found"

    if "server error" in msg_lower or "network error" in msg_lower:
        return "server"

    if "invalid" in msg_lower or "violates" in msg_lower or "too large" in msg_lower:
        return "validation"

    return "unknown"


def get_listing_limit(tenant: dict) -> int:
    """Product quota of a tenant row, defaulting when unset."""
    return tenant.get("listing_limit") or DEFAULT_LISTING_LIMIT


def transform_product_for_creation(product: dict, target_tenant_id: str) -> dict:
    """Build the insert payload for copying a product into the target tenant.

    Only whitelisted fields are kept; ids, timestamps and the featured image
    pointer of the source row are dropped.
    """
    transformed: dict[str, Any] = {"user_id": target_tenant_id}

    for key, value in product.items():
        if key not in PRODUCT_ALLOWED_FIELDS:
            continue
        if value is None:
            continue
        if key == "category" and isinstance(value, list):
            transformed[key] = list(value)
            continue
        transformed[key] = value

    return transformed


def select_missing_categories(
    source_categories: list[dict], target_categories: list[dict]
) -> list[str]:
    """Names of source categories whose comparison key the target lacks.

    Source spellings are kept; source entries that collide by key collapse to
    the first one.
    """
    target_keys = {comparison_key(cat.get("name")) for cat in target_categories}
    missing = []
    for name in dedupe(cat.get("name") for cat in source_categories):
        if comparison_key(name) not in target_keys:
            missing.append(name)
    return missing


def check_quota(existing: int, incoming: int, limit: int) -> str | None:
    """Return an error message if the clone would exceed the quota."""
    total = existing + incoming
    if total > limit:
        return (
            f"Listing limit exceeded: {existing} existing + {incoming} to clone = "
            f"{total} products, limit is {limit}"
        )
    return None


def create_categories(store: CategoryStore, tenant_id: str, names: list[Any]) -> CategoryCreation:
    """Validate and insert new categories for a tenant.

    Raises:
        ValidationError: no valid, new name remains in the batch, or the
            insert failed
    """
    batch = validate_and_sanitize_batch(names)
    outcome = CategoryCreation(invalid=batch.invalid, duplicates=batch.duplicates)

    if batch.duplicates:
        logger.warning("Dropped %d duplicate category names", len(batch.duplicates))

    if not batch.valid:
        raise ValidationError("No valid category names provided", invalid=batch.invalid)

    existing, error = store.list_categories(tenant_id)
    if error:
        raise ValidationError(f"Failed to fetch existing categories: {error}")
    existing_keys = {comparison_key(cat.get("name")) for cat in existing}

    to_insert = []
    for name in batch.valid:
        if comparison_key(name) in existing_keys:
            outcome.existing.append(name)
        else:
            to_insert.append(name)

    if not to_insert:
        raise ValidationError("All categories already exist", invalid=batch.invalid)

    if store.insert_categories(tenant_id, to_insert) is None:
        raise ValidationError(f"Failed to create categories: {store.last_error or 'Unknown error'}")

    outcome.created = to_insert
    return outcome


class _Run:
    """State shared by the steps of a single clone."""

    def __init__(
        self,
        store: CatalogStore,
        request: CloneRequest,
        progress: ProgressSink | None,
        clone_logger: CloneLogger | None,
        cancel: threading.Event | None,
    ):
        self.store = store
        self.request = request
        self.progress = progress
        self.clone_logger = clone_logger
        self.cancel = cancel
        self.result = CloneResult()

    def report(self, step: int, message: str, percentage: float) -> None:
        if self.progress:
            self.progress(CloneProgress(step, TOTAL_STEPS, message, percentage))

    def cancelled(self) -> bool:
        if self.cancel is not None and self.cancel.is_set():
            if not self.result.cancelled:
                logger.warning("Clone cancelled by caller")
                self.result.cancelled = True
                self.result.errors.append("Clone cancelled before completion")
            return True
        return False

    def fail(self, entity_type: str, source_id: str | None, message: str,
             payload: dict | list | None = None, identifier: str | None = None) -> None:
        logger.error(message)
        self.result.errors.append(message)
        if self.clone_logger:
            self.clone_logger.log_failure(
                entity_type=entity_type,
                source_id=source_id,
                error_message=message,
                error_type=classify_error(message),
                request_payload=payload,
                identifier=identifier,
            )

    def succeed(self, entity_type: str, source_id: str | None, new_id: str | None,
                identifier: str | None = None) -> None:
        if self.clone_logger:
            self.clone_logger.log_success(entity_type, source_id, new_id, identifier)


def wipe_target(run: _Run) -> bool:
    """Delete all target categories and products (images cascade).

    Returns:
        True if the target's products are gone
    """
    store = run.store
    target = run.request.target_tenant_id
    logger.warning("Replace strategy: deleting all categories and products of %s", target)

    products_removed = store.delete_products(target)
    if not products_removed:
        run.fail("products", None, f"Failed to delete existing products: {store.last_error or 'Unknown error'}")

    if not store.delete_categories(target):
        run.fail("categories", None, f"Failed to delete existing categories: {store.last_error or 'Unknown error'}")

    return products_removed


def clone_categories(run: _Run) -> None:
    """Insert source categories the target does not have yet."""
    store = run.store
    source = run.request.source_tenant_id
    target = run.request.target_tenant_id

    source_categories, error = store.list_categories(source)
    if error:
        run.fail("categories", None, f"Failed to fetch source categories: {error}")
        return
    if not source_categories:
        logger.info("No categories found in source tenant")
        return

    target_categories, error = store.list_categories(target)
    if error:
        run.fail("categories", None, f"Failed to fetch target categories: {error}")
        return

    to_insert = select_missing_categories(source_categories, target_categories)
    if not to_insert:
        logger.info("No new categories to clone (all already exist)")
        return

    inserted = store.insert_categories(target, to_insert)
    if inserted is None:
        run.fail(
            "categories", None,
            f"Failed to clone categories: {store.last_error or 'Unknown error'}",
            payload=to_insert,
        )
        return

    run.result.categories_cloned = len(to_insert)
    for row in inserted:
        run.succeed("categories", None, row.get("id"), row.get("name"))
    logger.info("Cloned %d categories", run.result.categories_cloned)


def clone_images(run: _Run, source_product: dict, new_product_id: str) -> None:
    """Copy the images of one product; every failure is soft."""
    store = run.store
    title = source_product.get("title")

    images, error = store.list_images(source_product["id"])
    if error:
        run.fail("images", source_product["id"], f'Failed to fetch images of "{title}": {error}')
        return

    featured_url = None
    for image in images:
        if run.cancelled():
            break

        url = image.get("url")
        if run.request.physical_duplicate:
            new_url = store.duplicate_image(url, new_product_id)
            if new_url is None:
                run.fail(
                    "images", image.get("id"),
                    f'Failed to copy image of "{title}": {store.last_error or "Unknown error"}',
                    identifier=url,
                )
                continue
        else:
            new_url = url

        image_data = {
            "product_id": new_product_id,
            "url": new_url,
            "is_featured": bool(image.get("is_featured")),
        }
        created = store.create_image(image_data)
        if created is None:
            run.fail(
                "images", image.get("id"),
                f'Failed to create image record for "{title}": {store.last_error or "Unknown error"}',
                payload=image_data,
                identifier=url,
            )
            if run.request.physical_duplicate and not store.delete_object(new_url):
                logger.warning("Could not remove orphaned image copy %s: %s", new_url, store.last_error)
            continue

        run.result.images_cloned += 1
        run.succeed("images", image.get("id"), created.get("id"), new_url)
        if image_data["is_featured"] and featured_url is None:
            featured_url = new_url

    if featured_url:
        if not store.update_product(new_product_id, {"featured_image_url": featured_url}):
            run.fail(
                "images", source_product["id"],
                f'Failed to set featured image of "{title}": {store.last_error or "Unknown error"}',
            )


def clone_products(run: _Run, source_products: list[dict]) -> None:
    """Copy products one at a time; a failed product does not stop the loop."""
    store = run.store
    target = run.request.target_tenant_id
    total = len(source_products)

    for index, product in enumerate(source_products):
        if run.cancelled():
            break

        title = product.get("title")
        run.report(
            5 + round(index / total * 4),
            f"Cloning product {index + 1}/{total}: {title}",
            40 + index / total * 50,
        )

        transformed = transform_product_for_creation(product, target)
        created = store.create_product(transformed)
        if not created or not created.get("id"):
            run.fail(
                "products", product.get("id"),
                f'Failed to create product "{title}": {store.last_error or "Unknown error"}',
                payload=transformed,
                identifier=title,
            )
            continue

        run.result.products_cloned += 1
        run.succeed("products", product.get("id"), created["id"], title)

        if run.request.copy_images:
            clone_images(run, product, created["id"])

    run.result.skipped = total - run.result.products_cloned


def _abort(run: _Run, message: str) -> CloneResult:
    logger.error("Clone aborted: %s", message)
    run.result.errors.append(message)
    run.result.success = False
    return _finish(run)


def _finish(run: _Run) -> CloneResult:
    result = run.result
    result.total_processed = result.categories_cloned + result.products_cloned
    if run.clone_logger:
        status = "cancelled" if result.cancelled else ("completed" if result.success else "failed")
        run.clone_logger.complete(status, result.to_dict())
    return result


def run_clone(
    store: CatalogStore,
    request: CloneRequest,
    progress: ProgressSink | None = None,
    clone_logger: CloneLogger | None = None,
    reconciler: SettingsReconciler | None = None,
    cancel: threading.Event | None = None,
    reconcile: bool = True,
) -> CloneResult:
    """Run a clone from the source tenant into the target tenant.

    Abort-level problems (invalid request, missing tenant, quota, failed
    count, cancellation) return ``success=False``. Per-item failures are
    collected in ``errors`` and processing continues.

    Args:
        store: Backend implementing every store interface
        request: What to copy and how
        progress: Callable receiving CloneProgress updates
        clone_logger: Optional JSON audit log
        reconciler: Settings reconciler for the target (built from store if None)
        cancel: Event checked between products and between images
        reconcile: Whether to rebuild the target's category settings at the end

    Returns:
        CloneResult with counts and error messages
    """
    run = _Run(store, request, progress, clone_logger, cancel)
    result = run.result
    source_id = request.source_tenant_id
    target_id = request.target_tenant_id

    # Validate request
    if not source_id or not target_id:
        return _abort(run, "Missing source or target tenant id")
    if source_id == target_id:
        return _abort(run, "Source and target tenants cannot be the same")
    if not request.copy_categories and not request.copy_products:
        return _abort(run, "At least one option must be selected (categories or products)")

    logger.info(
        "Starting clone %s -> %s (%s, categories=%s, products=%s, images=%s)",
        source_id[:8], target_id[:8], request.merge_strategy.value,
        request.copy_categories, request.copy_products, request.copy_images,
    )

    # Validate tenants
    run.report(1, "Validating tenants...", 10)
    source_tenant = store.get_tenant(source_id)
    if not source_tenant:
        return _abort(run, f"Source tenant not found: {source_id}")
    target_tenant = store.get_tenant(target_id)
    if not target_tenant:
        return _abort(run, f"Target tenant not found: {target_id}")

    replace = request.merge_strategy == MergeStrategy.REPLACE
    limit = get_listing_limit(target_tenant)
    incoming = 0

    # Quota pre-flight, before any write
    if request.copy_products:
        run.report(2, "Checking listing limit...", 15)
        source_count = store.count_products(source_id)
        target_count = 0 if replace else store.count_products(target_id)
        if source_count is None or target_count is None:
            return _abort(run, f"Failed to count products: {store.last_error or 'Unknown error'}")

        incoming = min(source_count, max(request.max_products, 0))
        quota_error = check_quota(target_count, incoming, limit)
        if quota_error:
            return _abort(run, quota_error)

    # Replace wipes the target first
    if replace:
        run.report(3, "Removing existing target data...", 20)
        if not wipe_target(run) and request.copy_products:
            remaining = store.count_products(target_id)
            quota_error = check_quota(remaining if remaining is not None else limit, incoming, limit)
            if quota_error:
                return _abort(run, quota_error)

    if request.copy_categories:
        run.report(4, "Cloning categories...", 30)
        clone_categories(run)

    if request.copy_products and incoming > 0:
        run.report(5, "Cloning products...", 40)
        source_products, error = store.list_products(source_id, limit=incoming)
        if error:
            run.fail("products", None, f"Failed to fetch source products: {error}")
        else:
            clone_products(run, source_products)

    if result.cancelled:
        result.success = False
        return _finish(run)

    if reconcile:
        run.report(9, "Synchronizing category settings...", 90)
        reconciler = reconciler or SettingsReconciler(store)
        try:
            reconciler.reconcile(target_id)
            run.succeed("settings", None, None, target_id)
        except SettingsStoreError as e:
            # Non-critical: the copy itself already happened
            run.fail("settings", None, f"Category settings sync failed (non-critical): {e}")

    run.report(10, "Clone completed", 100)
    result.success = True
    logger.info(
        "Clone finished: %d categories, %d products, %d images, %d errors",
        result.categories_cloned, result.products_cloned, result.images_cloned, len(result.errors),
    )
    return _finish(run)


def quick_clone(
    store: CatalogStore,
    source_tenant_id: str,
    target_tenant_id: str,
    progress: ProgressSink | None = None,
    clone_logger: CloneLogger | None = None,
    cancel: threading.Event | None = None,
) -> CloneResult:
    """Fast merge clone: categories and a capped number of products, no images."""
    request = CloneRequest(
        source_tenant_id=source_tenant_id,
        target_tenant_id=target_tenant_id,
        copy_categories=True,
        copy_products=True,
        merge_strategy=MergeStrategy.MERGE,
        copy_images=False,
        max_products=QUICK_CLONE_MAX_PRODUCTS,
    )
    return run_clone(store, request, progress, clone_logger, cancel=cancel, reconcile=False)


def full_clone(
    store: CatalogStore,
    source_tenant_id: str,
    target_tenant_id: str,
    progress: ProgressSink | None = None,
    clone_logger: CloneLogger | None = None,
    physical_duplicate: bool = False,
    cancel: threading.Event | None = None,
) -> CloneResult:
    """Merge clone of categories, products and images."""
    request = CloneRequest(
        source_tenant_id=source_tenant_id,
        target_tenant_id=target_tenant_id,
        copy_images=True,
        physical_duplicate=physical_duplicate,
    )
    return run_clone(store, request, progress, clone_logger, cancel=cancel)


def preview_clone(store: CatalogStore, request: CloneRequest) -> ClonePreview:
    """Inspect both tenants and report what a clone would run into."""
    warnings: list[str] = []
    source_id = request.source_tenant_id
    target_id = request.target_tenant_id

    source_categories, _ = store.list_categories(source_id)
    target_categories, _ = store.list_categories(target_id)
    source_products = store.count_products(source_id) or 0
    target_products = store.count_products(target_id) or 0
    target_tenant = store.get_tenant(target_id)

    source_stats = {"categories": len(source_categories), "products": source_products}
    target_stats = {
        "categories": len(target_categories),
        "products": target_products,
        "limit": get_listing_limit(target_tenant) if target_tenant else 0,
    }

    if store.get_tenant(source_id) is None:
        warnings.append(f"Source tenant not found: {source_id}")
    if target_tenant is None:
        warnings.append(f"Target tenant not found: {target_id}")

    if request.copy_products and target_tenant is not None:
        existing = 0 if request.merge_strategy == MergeStrategy.REPLACE else target_products
        incoming = min(source_products, request.max_products)
        quota_error = check_quota(existing, incoming, target_stats["limit"])
        if quota_error:
            warnings.append(quota_error)

    if request.copy_categories and not source_categories:
        warnings.append("Source tenant has no categories")

    if request.copy_products and source_products == 0:
        warnings.append("Source tenant has no products")

    return ClonePreview(
        valid=not warnings,
        warnings=warnings,
        source_stats=source_stats,
        target_stats=target_stats,
    )
