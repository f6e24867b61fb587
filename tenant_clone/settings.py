"""Keep a tenant's category display settings in line with its visible products."""

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from tenant_clone.errors import SettingsStoreError, SettingsWriteError
from tenant_clone.names import comparison_key, dedupe, sanitize
from tenant_clone.stores import ProductStore, SettingsStore

logger = logging.getLogger(__name__)

CATEGORY_SETTINGS_KEY = "categoryDisplaySettings"

# Written only when the stored document does not have them yet
DEFAULT_FILTERS = {
    "showFilters": True,
    "showSearch": True,
    "showPriceRange": True,
    "showCategories": True,
    "showBrands": True,
    "showGender": True,
    "showStatus": True,
    "showCondition": True,
}
DEFAULT_PRICE_RANGE = {"minPrice": 10, "maxPrice": 5000}
DEFAULT_ITEMS_PER_PAGE = 12


@dataclass
class RetryPolicy:
    """Bounded retry with linear backoff: delay, 2 * delay, ..."""

    max_attempts: int = 3
    delay: float = 0.5
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        return self.delay * attempt


def collect_categories(products: list[dict]) -> list[str]:
    """Extract the sorted, deduplicated category names used by products.

    The first sanitized spelling seen for each comparison key is canonical.
    """
    names = []
    for product in products:
        categories = product.get("category")
        if isinstance(categories, list):
            names.extend(categories)
    return sorted(dedupe(names))


def merge_category_settings(existing: list[dict], current: list[str]) -> list[dict]:
    """Merge stored display entries with the current category names.

    Entries still in use keep their position in the stored list and their
    enabled flag but take the current spelling. Stored order values are
    ignored. New names are appended enabled. Orders are
    rewritten to list positions.
    """
    canonical = {comparison_key(name): name for name in current}
    merged: list[dict] = []
    placed: set[str] = set()

    for entry in existing:
        if not isinstance(entry, dict):
            continue
        key = comparison_key(sanitize(entry.get("category")))
        if not key or key not in canonical or key in placed:
            continue
        placed.add(key)
        merged.append({
            **entry,
            "category": canonical[key],
            "enabled": entry.get("enabled", True),
        })

    for name in current:
        key = comparison_key(name)
        if key in placed:
            continue
        placed.add(key)
        merged.append({"category": name, "enabled": True})

    for index, entry in enumerate(merged):
        entry["order"] = index

    return merged


def build_settings_document(current_settings: dict, category_settings: list[dict]) -> dict:
    """Return a new settings document with category entries replaced.

    Unrelated keys are carried over untouched.
    """
    document = copy.deepcopy(current_settings)
    document[CATEGORY_SETTINGS_KEY] = category_settings
    document.setdefault("filters", dict(DEFAULT_FILTERS))
    document.setdefault("priceRange", dict(DEFAULT_PRICE_RANGE))
    document.setdefault("itemsPerPage", DEFAULT_ITEMS_PER_PAGE)
    return document


class SettingsStoreAdapter:
    """Wraps a settings store with a retry policy for reads and upserts."""

    def __init__(self, store: SettingsStore, retry: RetryPolicy | None = None):
        self.store = store
        self.retry = retry or RetryPolicy()

    def read(self, tenant_id: str) -> dict:
        """Load the settings document, {} when the tenant has none yet."""
        error = None
        for attempt in range(1, self.retry.max_attempts + 1):
            settings, error = self.store.get_settings(tenant_id)
            if error is None:
                return settings or {}
            logger.warning(
                "Settings read failed for %s (attempt %d/%d): %s",
                tenant_id, attempt, self.retry.max_attempts, error,
            )
            if attempt < self.retry.max_attempts:
                self.retry.sleep(self.retry.backoff(attempt))
        raise SettingsStoreError(tenant_id, error or "Unknown error")

    def write(self, tenant_id: str, settings: dict) -> None:
        """Upsert the settings document, raising after the last failed attempt."""
        for attempt in range(1, self.retry.max_attempts + 1):
            if self.store.upsert_settings(tenant_id, settings):
                return
            logger.warning(
                "Settings upsert failed for %s (attempt %d/%d): %s",
                tenant_id, attempt, self.retry.max_attempts, self.store.last_error,
            )
            if attempt < self.retry.max_attempts:
                self.retry.sleep(self.retry.backoff(attempt))
        raise SettingsWriteError(
            tenant_id, self.store.last_error or "Unknown error", self.retry.max_attempts
        )


class SettingsReconciler:
    """Rebuilds ``categoryDisplaySettings`` from a tenant's visible products."""

    def __init__(self, store: Any, retry: RetryPolicy | None = None):
        self.products: ProductStore = store
        self.settings = SettingsStoreAdapter(store, retry)

    def reconcile(self, tenant_id: str) -> list[dict]:
        """Synchronize the tenant's category display settings.

        Returns:
            The category entries that were written

        Raises:
            SettingsStoreError: products or settings could not be read
            SettingsWriteError: the upsert failed on every attempt
        """
        logger.debug("Reconciling category settings for %s", tenant_id)

        products, error = self.products.list_products(tenant_id, visible_only=True)
        if error:
            raise SettingsStoreError(tenant_id, f"Failed to fetch products: {error}")

        current = collect_categories(products)
        current_settings = self.settings.read(tenant_id)

        if not current:
            logger.info("No visible categories for %s, clearing display settings", tenant_id)
            category_settings: list[dict] = []
        else:
            existing = current_settings.get(CATEGORY_SETTINGS_KEY) or []
            category_settings = merge_category_settings(existing, current)

        document = build_settings_document(current_settings, category_settings)
        self.settings.write(tenant_id, document)
        self._verify(tenant_id, category_settings)

        logger.info(
            "Category settings for %s: %d entries (%d enabled)",
            tenant_id,
            len(category_settings),
            sum(1 for entry in category_settings if entry.get("enabled")),
        )
        return category_settings

    def _verify(self, tenant_id: str, expected: list[dict]) -> None:
        """Read the document back once; disagreements are only logged."""
        stored, error = self.settings.store.get_settings(tenant_id)
        if error:
            logger.warning("Could not verify settings for %s: %s", tenant_id, error)
            return
        found = (stored or {}).get(CATEGORY_SETTINGS_KEY) or []
        if found != expected:
            logger.warning(
                "Settings read-back mismatch for %s: wrote %d entries, read %d",
                tenant_id, len(expected), len(found),
            )


def refresh_category_settings(
    store: Any, tenant_id: str, retry: RetryPolicy | None = None
) -> bool:
    """Reconcile after a product create/edit without interrupting the caller.

    Returns:
        True if the settings were written, False if reconciliation failed
    """
    if not tenant_id:
        logger.error("Cannot refresh category settings without a tenant id")
        return False
    try:
        SettingsReconciler(store, retry).reconcile(tenant_id)
    except SettingsStoreError as e:
        logger.error("Category settings refresh failed: %s", e)
        return False
    return True
