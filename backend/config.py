from __future__ import annotations
import os
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "saaj_trading")

    # Resend transactional email
    RESEND_API_KEY: Optional[str] = os.getenv("RESEND_API_KEY")
    RESEND_API_URL: str = os.getenv("RESEND_API_URL", "https://api.resend.com")
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@example.com")
    CONTACT_EMAIL: Optional[str] = os.getenv("CONTACT_EMAIL")
    FROM_EMAIL: str = os.getenv("FROM_EMAIL", "onboarding@resend.dev")

    # Supabase storage for product/category/brand images
    SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
    SUPABASE_KEY: Optional[str] = os.getenv("SUPABASE_KEY")
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "images")

    CART_STORAGE_KEY: str = os.getenv("CART_STORAGE_KEY", "saaj-cart")
    CART_STORAGE_DIR: str = os.getenv("CART_STORAGE_DIR", ".saaj")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON: bool = True
    CORS_ORIGINS: list[str] = ["*"]
    PORT: int = int(os.getenv("PORT", 8000))

    @property
    def contact_recipient(self) -> str:
        return self.CONTACT_EMAIL or self.ADMIN_EMAIL

    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY)

    @property
    def storage_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_KEY)


settings = Settings()


def get_settings() -> Settings:
    return settings
