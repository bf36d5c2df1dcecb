"""
Configuration management for the WhatsApp notification relay
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Shopify WhatsApp Notifier"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Database
    database_url: str = "sqlite:///./data/whatsapp_shopify.db"

    # Shopify (OAuth and webhook verification live in the Shopify SDK layer)
    shopify_api_key: Optional[str] = None
    shopify_api_secret: Optional[str] = None
    shopify_api_version: str = "2024-01"

    # Twilio WhatsApp
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_number: Optional[str] = None
    twilio_api_base_url: str = "https://api.twilio.com"
    twilio_timeout_seconds: float = 30.0

    # Per-message cost accounting (USD)
    marketing_message_cost: float = 0.05
    utility_message_cost: float = 0.02

    # Scheduler
    scheduler_enabled: bool = True
    abandoned_cart_interval_minutes: int = 30
    review_request_interval_hours: int = 24
    campaign_interval_minutes: int = 5
    review_request_delay_days: int = 3
    # Keep advancing a cart to its next reminder stage even when the send failed
    cart_reminder_advance_on_error: bool = False

    # Inbound messages from numbers with no known shop fall back to this one
    default_shop_domain: Optional[str] = None

    # App uninstall: deactivate the shop row instead of deleting it
    soft_delete_on_uninstall: bool = False

    # Dashboard Basic Auth (gate for /api/*)
    dash_user: str = ""
    dash_pass: str = ""

    # Template defaults
    default_delivery_estimate: str = "3-5 business days"
    free_shipping_threshold: str = "$50"
    support_phone: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
