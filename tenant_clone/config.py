"""Environment configuration for the command-line tool."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_BUCKET = "public"
DEFAULT_MAX_PRODUCTS = 1000


@dataclass
class Config:
    supabase_url: str
    service_key: str
    bucket: str = DEFAULT_BUCKET
    max_products: int = DEFAULT_MAX_PRODUCTS


def load_config() -> Config:
    """Read configuration from the environment (and a .env file, if present).

    Raises:
        ValueError: a required variable is missing or malformed
    """
    load_dotenv()

    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url:
        raise ValueError("SUPABASE_URL environment variable not set. Please create a .env file.")
    if not key:
        raise ValueError("SUPABASE_SERVICE_ROLE_KEY environment variable not set.")

    max_products = os.getenv("TENANT_CLONE_MAX_PRODUCTS", str(DEFAULT_MAX_PRODUCTS))
    try:
        max_products_value = int(max_products)
    except ValueError:
        raise ValueError(f"TENANT_CLONE_MAX_PRODUCTS must be an integer, got {max_products!r}")

    return Config(
        supabase_url=url,
        service_key=key,
        bucket=os.getenv("TENANT_CLONE_STORAGE_BUCKET", DEFAULT_BUCKET),
        max_products=max_products_value,
    )
