"""Store interfaces consumed by the clone engine and settings reconciler.

Implementations report failures the way the HTTP client does: a ``None``,
``False`` or ``(value, error)`` return, with the message kept on
``last_error``.
"""

from typing import Protocol


class TenantStore(Protocol):
    last_error: str | None

    def get_tenant(self, tenant_id: str) -> dict | None:
        """Return the tenant row (id, name, listing_limit) or None."""
        ...


class CategoryStore(Protocol):
    last_error: str | None

    def list_categories(self, tenant_id: str) -> tuple[list[dict], str | None]:
        ...

    def insert_categories(self, tenant_id: str, names: list[str]) -> list[dict] | None:
        ...

    def delete_categories(self, tenant_id: str) -> bool:
        ...


class ProductStore(Protocol):
    last_error: str | None

    def list_products(
        self,
        tenant_id: str,
        limit: int | None = None,
        visible_only: bool = False,
    ) -> tuple[list[dict], str | None]:
        ...

    def count_products(self, tenant_id: str) -> int | None:
        ...

    def create_product(self, product_data: dict) -> dict | None:
        ...

    def update_product(self, product_id: str, fields: dict) -> bool:
        ...

    def delete_products(self, tenant_id: str) -> bool:
        """Delete every product of the tenant together with its images."""
        ...


class ImageStore(Protocol):
    last_error: str | None

    def list_images(self, product_id: str) -> tuple[list[dict], str | None]:
        ...

    def create_image(self, image_data: dict) -> dict | None:
        ...

    def duplicate_image(self, url: str, product_id: str) -> str | None:
        """Copy the stored object behind url and return the new public URL."""
        ...

    def delete_object(self, url: str) -> bool:
        """Remove an object created by duplicate_image."""
        ...


class SettingsStore(Protocol):
    last_error: str | None

    def get_settings(self, tenant_id: str) -> tuple[dict | None, str | None]:
        """Return (settings, None), (None, None) when absent, or (None, error)."""
        ...

    def upsert_settings(self, tenant_id: str, settings: dict) -> bool:
        ...


class CatalogStore(TenantStore, CategoryStore, ProductStore, ImageStore, SettingsStore, Protocol):
    """Everything a clone needs from the backend."""
