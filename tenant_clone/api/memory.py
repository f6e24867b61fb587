"""In-process catalog store with the same interface as SupabaseClient."""

import copy
import itertools
from typing import Any


class MemoryStore:
    """Keeps tenants, categories, products, images and settings in dicts.

    Rows are copied in and out so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self.tenants: dict[str, dict] = {}
        self.categories: list[dict] = []
        self.products: list[dict] = []
        self.images: list[dict] = []
        self.settings: dict[str, dict] = {}
        self.objects: dict[str, str] = {}  # new object url -> source url
        self.last_error: str | None = None
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # Seeding helpers

    def add_tenant(self, tenant_id: str, name: str = "", listing_limit: int | None = 50) -> dict:
        tenant = {"id": tenant_id, "name": name or tenant_id, "listing_limit": listing_limit}
        self.tenants[tenant_id] = tenant
        return tenant

    def add_product(self, tenant_id: str, images: list[dict] | None = None, **fields: Any) -> dict:
        """Store a product row and its images directly, bypassing create_product."""
        product = {
            "id": self._next_id("prod"),
            "user_id": tenant_id,
            "category": [],
            "is_visible_on_storefront": True,
            **fields,
        }
        self.products.append(product)
        for image in images or []:
            self.images.append({"id": self._next_id("img"), "product_id": product["id"], **image})
        return product

    # Tenants

    def get_tenant(self, tenant_id: str) -> dict | None:
        self.last_error = None
        tenant = self.tenants.get(tenant_id)
        if tenant is None:
            self.last_error = f"Tenant not found: {tenant_id}"
            return None
        return dict(tenant)

    # Categories

    def list_categories(self, tenant_id: str) -> tuple[list[dict], str | None]:
        return [dict(c) for c in self.categories if c["user_id"] == tenant_id], None

    def insert_categories(self, tenant_id: str, names: list[str]) -> list[dict] | None:
        self.last_error = None
        rows = [{"id": self._next_id("cat"), "user_id": tenant_id, "name": name} for name in names]
        self.categories.extend(rows)
        return [dict(row) for row in rows]

    def delete_categories(self, tenant_id: str) -> bool:
        self.categories = [c for c in self.categories if c["user_id"] != tenant_id]
        return True

    # Products

    def list_products(
        self,
        tenant_id: str,
        limit: int | None = None,
        visible_only: bool = False,
    ) -> tuple[list[dict], str | None]:
        rows = [
            p for p in self.products
            if p["user_id"] == tenant_id
            and (not visible_only or p.get("is_visible_on_storefront"))
        ]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows), None

    def count_products(self, tenant_id: str) -> int | None:
        return sum(1 for p in self.products if p["user_id"] == tenant_id)

    def create_product(self, product_data: dict) -> dict | None:
        self.last_error = None
        product = {"id": self._next_id("prod"), **copy.deepcopy(product_data)}
        self.products.append(product)
        return copy.deepcopy(product)

    def update_product(self, product_id: str, fields: dict) -> bool:
        self.last_error = None
        for product in self.products:
            if product["id"] == product_id:
                product.update(copy.deepcopy(fields))
                return True
        self.last_error = f"Product not found: {product_id}"
        return False

    def delete_products(self, tenant_id: str) -> bool:
        removed = {p["id"] for p in self.products if p["user_id"] == tenant_id}
        self.images = [i for i in self.images if i["product_id"] not in removed]
        self.products = [p for p in self.products if p["user_id"] != tenant_id]
        return True

    # Images

    def list_images(self, product_id: str) -> tuple[list[dict], str | None]:
        return [dict(i) for i in self.images if i["product_id"] == product_id], None

    def create_image(self, image_data: dict) -> dict | None:
        self.last_error = None
        image = {"id": self._next_id("img"), **image_data}
        self.images.append(image)
        return dict(image)

    def duplicate_image(self, url: str, product_id: str) -> str | None:
        self.last_error = None
        name = url.rsplit("/", 1)[-1]
        new_url = f"memory://products/{product_id}-{next(self._ids)}-{name}"
        self.objects[new_url] = url
        return new_url

    def delete_object(self, url: str) -> bool:
        self.last_error = None
        if self.objects.pop(url, None) is None:
            self.last_error = f"Object not found: {url}"
            return False
        return True

    # Settings

    def get_settings(self, tenant_id: str) -> tuple[dict | None, str | None]:
        settings = self.settings.get(tenant_id)
        return (copy.deepcopy(settings) if settings is not None else None), None

    def upsert_settings(self, tenant_id: str, settings: dict) -> bool:
        self.last_error = None
        self.settings[tenant_id] = copy.deepcopy(settings)
        return True

    def close(self) -> None:
        pass

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
