"""
Application configuration with automatic environment detection
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings with automatic environment detection"""

    # Environment detection
    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV == "PROD" or ENV == "PRODUCTION"
    IS_DEVELOPMENT = not IS_PRODUCTION

    # Server configuration
    HOST = os.getenv("HOST", "127.0.0.1")
    PORT = int(os.getenv("PORT", 8000))

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ledgersync.db")

    # Shopify store (single merchant)
    SHOPIFY_STORE_DOMAIN = os.getenv("SHOPIFY_STORE_DOMAIN", "").strip()
    SHOPIFY_ACCESS_TOKEN = os.getenv("SHOPIFY_ACCESS_TOKEN", "").strip()
    SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-01").strip()
    SHOPIFY_WEBHOOK_SECRET = os.getenv("SHOPIFY_WEBHOOK_SECRET", "").strip()

    # Bulk sync
    # Full reset wipes order-derived tables before paging (products are kept)
    SHOPIFY_FULL_SYNC = _env_bool("SHOPIFY_FULL_SYNC", True)
    SHOPIFY_PAGE_SIZE = int(os.getenv("SHOPIFY_PAGE_SIZE", "250"))
    SHOPIFY_REQUEST_DELAY_SEC = float(os.getenv("SHOPIFY_REQUEST_DELAY_SEC", "0.5"))
    SHOPIFY_TIMEOUT_SEC = float(os.getenv("SHOPIFY_TIMEOUT_SEC", "30"))

    # Refund reconciliation: "exclude" or "subtract_item_allocations"
    REFUND_DISCOUNT_MODE = os.getenv("REFUND_DISCOUNT_MODE", "exclude").strip().lower()
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD").strip().upper()

    # CORS - Fully dynamic based on ALLOWED_ORIGINS environment variable
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Get allowed CORS origins from environment (localhost added in development)"""
        origins = []

        if self.IS_DEVELOPMENT:
            origins.extend([
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ])

        env_origins = os.getenv("ALLOWED_ORIGINS", "")
        if env_origins:
            for origin in env_origins.split(","):
                origin = origin.strip()
                if origin:
                    origins.append(origin)

        # Remove duplicates while preserving order
        seen = set()
        unique_origins = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique_origins.append(origin)

        return unique_origins

    @property
    def CORS_ORIGIN_REGEX(self) -> Optional[str]:
        """Get CORS origin regex pattern - optional, only if CORS_ORIGIN_REGEX env var is set"""
        regex = os.getenv("CORS_ORIGIN_REGEX", "")
        if regex:
            return regex
        if self.IS_DEVELOPMENT:
            return r"http://localhost:\d+|http://127\.0\.0\.1:\d+"
        return None

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG").upper()

    # API Configuration
    API_PREFIX = "/api"

    @property
    def SHOPIFY_CONFIGURED(self) -> bool:
        return bool(self.SHOPIFY_STORE_DOMAIN and self.SHOPIFY_ACCESS_TOKEN)

    def __str__(self):
        return f"Settings(ENV={self.ENV}, IS_PRODUCTION={self.IS_PRODUCTION}, STORE={self.SHOPIFY_STORE_DOMAIN or '-'})"


# Global settings instance
settings = Settings()
