"""
Application settings for the Manyanza backend
Loaded from environment / .env via pydantic-settings
"""
from typing import Dict

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENVIRONMENT: str = "development"
    APP_NAME: str = "Manyanza Transit API"
    LOG_LEVEL: str = "INFO"
    # Local calendar for "today"/"tomorrow" in chat date parsing
    TIMEZONE: str = "Africa/Dar_es_Salaam"

    # Firestore
    USE_MOCK_FIREBASE: bool = False

    # Admin endpoints (X-Admin-Key). Empty = open in development, refused in production.
    ADMIN_API_KEY: str = ""

    # Twilio WhatsApp
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_WHATSAPP_NUMBER: str = "whatsapp:+255765111131"
    TWILIO_VALIDATE_SIGNATURE: bool = True
    TWILIO_TIMEOUT_SECONDS: float = 10.0
    # Public URL Twilio posts to, used for signature validation behind proxies
    TWILIO_WEBHOOK_URL: str = ""

    # Operations desk, notified when a chat booking is created
    OPS_NOTIFY_PHONE: str = "+255765111131"
    PAYMENT_MPESA_NUMBER: str = "0765 111 131"
    PAYMENT_TIGOPESA_NUMBER: str = "0765 111 131"

    # Pricing defaults (TZS). Live values come from the pricing config document.
    RATE_PER_KM: int = 1500
    PER_DIEM_RATE: int = 50000
    PLATFORM_COMMISSION_DEFAULT: float = 0.18
    WAITING_FEE_PER_HOUR: int = 15000
    FREE_WAITING_HOURS: float = 2
    AFTER_HOURS_SURCHARGE: int = 25000
    DEFAULT_RETURN_ALLOWANCE: int = 75000
    # half_distance_capped | none
    CUSTOM_ROUTE_RETURN_POLICY: str = "half_distance_capped"
    CORRIDOR_ALLOWANCES: Dict[str, int] = {}
    PRICING_CONFIG_TTL_SECONDS: int = 60

    # Conversation
    CUSTOM_ROUTE_DEFAULT_KM: int = 100
    CONVERSATION_TTL_HOURS: int = 0
    MAX_BOOKING_DAYS_AHEAD: int = 365

    @field_validator("CUSTOM_ROUTE_RETURN_POLICY", mode="after")
    @classmethod
    def validate_return_policy(cls, v: str) -> str:
        if v not in ("half_distance_capped", "none"):
            raise ValueError("CUSTOM_ROUTE_RETURN_POLICY must be 'half_distance_capped' or 'none'")
        return v

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID.startswith("AC") and self.TWILIO_AUTH_TOKEN)


settings = Settings()
