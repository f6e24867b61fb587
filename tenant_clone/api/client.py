"""HTTP client for the Supabase REST and Storage APIs backing the catalog."""

import json
import secrets
import time
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
from rich.console import Console

console = Console(stderr=True)

# Images larger than this are not copied
MAX_IMAGE_BYTES = 10 * 1024 * 1024

TENANTS_TABLE = "users"
CATEGORIES_TABLE = "user_product_categories"
PRODUCTS_TABLE = "products"
IMAGES_TABLE = "product_images"
SETTINGS_TABLE = "user_storefront_settings"


class RateLimitError(Exception):
    """Raised when rate limit is hit."""

    def __init__(self, retry_after: datetime | None = None):
        self.retry_after = retry_after
        super().__init__("Rate limit exceeded")


class APIError(Exception):
    """Raised for API errors."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"API Error {status_code}: {message}")


class SupabaseClient:
    """Catalog store backed by PostgREST tables and a Storage bucket.

    Reads are retried on server and network errors. Writes are sent once;
    callers decide whether a failed write is worth retrying.
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        bucket: str = "public",
        debug: bool = False,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.bucket = bucket
        self.debug = debug
        self.client = httpx.Client(
            base_url=self.url,
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
            transport=transport,
        )
        # Image downloads go to arbitrary hosts, so they never carry the service key
        self.download_client = httpx.Client(
            timeout=30.0, follow_redirects=True, transport=transport
        )
        self.last_error: str | None = None  # Track last error for reporting

    def _log_debug(self, method: str, url: str, request_body: Any, response: httpx.Response) -> None:
        """Log request/response details for debugging."""
        if not self.debug:
            return
        console.print(f"\n[dim]─── DEBUG {method} {url} ───[/dim]")
        if request_body:
            console.print(f"[dim]Request: {json.dumps(request_body, indent=2)}[/dim]")
        console.print(f"[dim]Status: {response.status_code}[/dim]")
        console.print(f"[dim]Response: {response.text[:500]}[/dim]")
        console.print("[dim]───────────────────────────[/dim]\n")

    def _handle_response(self, response: httpx.Response) -> Any:
        """Return the decoded body or raise for error statuses."""
        if response.status_code == 429:
            retry_after = None
            if "Retry-After" in response.headers:
                try:
                    retry_after = parsedate_to_datetime(response.headers["Retry-After"])
                except (ValueError, TypeError):
                    pass
            raise RateLimitError(retry_after)

        if response.status_code == 401:
            raise APIError(401, "Invalid or expired service key")

        if response.status_code == 403:
            raise APIError(403, "Insufficient permissions")

        if response.status_code >= 500:
            raise APIError(response.status_code, "Server error - please try again")

        if response.status_code >= 400:
            try:
                error_data = response.json()
                # PostgREST errors: {"code", "message", "details", "hint"}
                message = error_data.get("message") or error_data.get("error") or ""
                code = error_data.get("code")
                details = error_data.get("details")
                if code:
                    message = f"{message} ({code})" if message else str(code)
                if details:
                    message = f"{message}: {details}" if message else str(details)
                if not message:
                    message = response.text
            except (ValueError, json.JSONDecodeError, AttributeError):
                message = response.text
            raise APIError(response.status_code, message)

        if not response.content:
            return {}
        try:
            return response.json()
        except (ValueError, json.JSONDecodeError):
            return {}

    def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
        json_data: Any = None,
        headers: dict | None = None,
        max_retries: int = 3,
    ) -> Any:
        """Make a request, retrying server/network errors with exponential backoff.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE)
            endpoint: Path relative to the project URL
            params: Query string (PostgREST filters)
            json_data: Optional JSON body
            headers: Extra headers (e.g. Prefer)
            max_retries: Retry attempts for rate limits and server errors

        Returns:
            Decoded response body, or None on failure (see last_error)
        """
        self.last_error = None
        for attempt in range(max_retries + 1):
            try:
                response = self.client.request(
                    method, endpoint, params=params, json=json_data, headers=headers
                )
                self._log_debug(method, f"{self.url}{endpoint}", json_data, response)
                return self._handle_response(response)

            except RateLimitError as e:
                if attempt >= max_retries:
                    self.last_error = "Rate limit exceeded"
                    return None
                if e.retry_after:
                    wait_seconds = (e.retry_after - datetime.now(e.retry_after.tzinfo)).total_seconds()
                    if wait_seconds > 0:
                        console.print(f"[yellow]Rate limited. Waiting {wait_seconds:.0f}s...[/yellow]")
                        time.sleep(wait_seconds)
                else:
                    console.print("[yellow]Rate limited. Waiting 60s...[/yellow]")
                    time.sleep(60)
                continue

            except APIError as e:
                # Don't retry client errors (4xx except 429)
                if 400 <= e.status_code < 500:
                    self.last_error = e.message
                    return None

                if attempt < max_retries:
                    backoff = 2 ** attempt  # 1s, 2s, 4s
                    console.print(f"[yellow]Server error. Retrying in {backoff}s...[/yellow]")
                    time.sleep(backoff)
                else:
                    self.last_error = e.message
                    return None

            except httpx.RequestError as e:
                if attempt < max_retries:
                    backoff = 2 ** attempt
                    console.print(f"[yellow]Network error. Retrying in {backoff}s...[/yellow]")
                    time.sleep(backoff)
                else:
                    self.last_error = f"Network error: {e}"
                    return None

        return None

    def _select(self, table: str, params: dict) -> tuple[list[dict], str | None]:
        result = self._request_with_retry("GET", f"/rest/v1/{table}", params=params)
        if result is None:
            return [], self.last_error or f"Failed to fetch {table}"
        if isinstance(result, list):
            return result, None
        return [], None

    def _insert(self, table: str, rows: dict | list[dict]) -> list[dict] | None:
        result = self._request_with_retry(
            "POST",
            f"/rest/v1/{table}",
            json_data=rows,
            headers={"Prefer": "return=representation"},
            max_retries=0,
        )
        if result is None:
            return None
        if isinstance(result, list):
            return result
        return [result] if result else []

    def _delete(self, table: str, params: dict) -> bool:
        result = self._request_with_retry(
            "DELETE", f"/rest/v1/{table}", params=params, max_retries=0
        )
        return result is not None

    # Tenants

    def get_tenant(self, tenant_id: str) -> dict | None:
        """Fetch a tenant (id, name, listing_limit)."""
        rows, error = self._select(
            TENANTS_TABLE, {"id": f"eq.{tenant_id}", "select": "id,name,listing_limit"}
        )
        if error:
            return None
        if not rows:
            self.last_error = f"Tenant not found: {tenant_id}"
            return None
        return rows[0]

    # Categories

    def list_categories(self, tenant_id: str) -> tuple[list[dict], str | None]:
        """Fetch all categories of a tenant.

        Returns:
            (categories, None) on success
            ([], error_message) on failure
        """
        return self._select(
            CATEGORIES_TABLE,
            {"user_id": f"eq.{tenant_id}", "select": "id,user_id,name", "order": "created_at.asc"},
        )

    def insert_categories(self, tenant_id: str, names: list[str]) -> list[dict] | None:
        """Insert category rows in one request."""
        rows = [{"user_id": tenant_id, "name": name} for name in names]
        return self._insert(CATEGORIES_TABLE, rows)

    def delete_categories(self, tenant_id: str) -> bool:
        return self._delete(CATEGORIES_TABLE, {"user_id": f"eq.{tenant_id}"})

    # Products

    def list_products(
        self,
        tenant_id: str,
        limit: int | None = None,
        visible_only: bool = False,
    ) -> tuple[list[dict], str | None]:
        """Fetch products of a tenant in display order.

        Returns:
            (products, None) on success
            ([], error_message) on failure
        """
        params: dict[str, Any] = {
            "user_id": f"eq.{tenant_id}",
            "select": "*",
            "order": "display_order.asc.nullslast,created_at.asc",
        }
        if visible_only:
            params["is_visible_on_storefront"] = "eq.true"
        if limit is not None:
            params["limit"] = limit
        return self._select(PRODUCTS_TABLE, params)

    def count_products(self, tenant_id: str) -> int | None:
        """Exact product count of a tenant, read from the Content-Range header."""
        self.last_error = None
        try:
            response = self.client.request(
                "HEAD",
                f"/rest/v1/{PRODUCTS_TABLE}",
                params={"user_id": f"eq.{tenant_id}", "select": "id"},
                headers={"Prefer": "count=exact"},
            )
        except httpx.RequestError as e:
            self.last_error = f"Network error: {e}"
            return None

        if response.status_code >= 400:
            self.last_error = f"Failed to count products (HTTP {response.status_code})"
            return None

        # Format: "0-24/25" or "*/0"
        content_range = response.headers.get("Content-Range", "")
        try:
            return int(content_range.rsplit("/", 1)[1])
        except (IndexError, ValueError):
            self.last_error = f"Unexpected Content-Range: {content_range!r}"
            return None

    def create_product(self, product_data: dict) -> dict | None:
        rows = self._insert(PRODUCTS_TABLE, product_data)
        if rows:
            return rows[0]
        if rows is not None:
            self.last_error = "Product insert returned no row"
        return None

    def update_product(self, product_id: str, fields: dict) -> bool:
        result = self._request_with_retry(
            "PATCH",
            f"/rest/v1/{PRODUCTS_TABLE}",
            params={"id": f"eq.{product_id}"},
            json_data=fields,
            max_retries=0,
        )
        return result is not None

    def delete_products(self, tenant_id: str) -> bool:
        """Delete a tenant's products, removing their images first."""
        products, error = self._select(
            PRODUCTS_TABLE, {"user_id": f"eq.{tenant_id}", "select": "id"}
        )
        if error:
            self.last_error = error
            return False
        if not products:
            return True

        ids = ",".join(p["id"] for p in products)
        if not self._delete(IMAGES_TABLE, {"product_id": f"in.({ids})"}):
            return False
        return self._delete(PRODUCTS_TABLE, {"user_id": f"eq.{tenant_id}"})

    # Images

    def list_images(self, product_id: str) -> tuple[list[dict], str | None]:
        return self._select(IMAGES_TABLE, {"product_id": f"eq.{product_id}", "select": "*"})

    def create_image(self, image_data: dict) -> dict | None:
        rows = self._insert(IMAGES_TABLE, image_data)
        if rows:
            return rows[0]
        return None

    def public_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{path}"

    def duplicate_image(self, url: str, product_id: str) -> str | None:
        """Download an image and upload it as a new object for product_id.

        Returns:
            Public URL of the new object, or None on failure
        """
        self.last_error = None
        try:
            response = self.download_client.get(url)
        except httpx.RequestError as e:
            self.last_error = f"Network error: {e}"
            return None

        if response.status_code != 200:
            self.last_error = f"Failed to fetch image {url}: HTTP {response.status_code}"
            return None

        if len(response.content) > MAX_IMAGE_BYTES:
            self.last_error = f"Image too large ({len(response.content)} bytes)"
            return None

        original_name = url.split("?")[0].rsplit("/", 1)[-1] or "image.jpg"
        extension = original_name.rsplit(".", 1)[-1] if "." in original_name else "jpg"
        path = f"products/{product_id}-{int(time.time() * 1000)}-{secrets.token_hex(5)}.{extension}"
        content_type = response.headers.get("Content-Type", "application/octet-stream")

        try:
            upload = self.client.post(
                f"/storage/v1/object/{self.bucket}/{path}",
                content=response.content,
                headers={
                    "Content-Type": content_type,
                    "Cache-Control": "3600",
                    "x-upsert": "false",
                },
            )
        except httpx.RequestError as e:
            self.last_error = f"Network error: {e}"
            return None

        if upload.status_code not in (200, 201):
            self.last_error = f"Failed to upload image: HTTP {upload.status_code} {upload.text[:200]}"
            return None

        return self.public_url(path)

    def delete_object(self, url: str) -> bool:
        """Delete a bucket object given its public URL."""
        prefix = self.public_url("")
        if not url.startswith(prefix):
            self.last_error = f"Not an object of bucket {self.bucket}: {url}"
            return False
        result = self._request_with_retry(
            "DELETE",
            f"/storage/v1/object/{self.bucket}/{url[len(prefix):]}",
            max_retries=0,
        )
        return result is not None

    # Settings

    def get_settings(self, tenant_id: str) -> tuple[dict | None, str | None]:
        """Fetch the storefront settings document of a tenant.

        Returns:
            (settings, None) on success
            (None, None) if the tenant has no settings yet
            (None, error_message) on failure
        """
        rows, error = self._select(
            SETTINGS_TABLE, {"user_id": f"eq.{tenant_id}", "select": "settings"}
        )
        if error:
            return None, error
        if not rows:
            return None, None
        return rows[0].get("settings") or {}, None

    def upsert_settings(self, tenant_id: str, settings: dict) -> bool:
        """Insert or replace the settings document (conflict on user_id)."""
        result = self._request_with_retry(
            "POST",
            f"/rest/v1/{SETTINGS_TABLE}",
            params={"on_conflict": "user_id"},
            json_data={"user_id": tenant_id, "settings": settings},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            max_retries=0,
        )
        return result is not None

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
        self.download_client.close()

    def __enter__(self) -> "SupabaseClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
