import os
from functools import lru_cache
from typing import Annotated, Dict, List, Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def runtime_default_app_url() -> str:
    """Return the public base URL based on the runtime environment."""

    render_url = os.getenv("RENDER_EXTERNAL_URL")
    if render_url:
        return render_url.rstrip("/")

    port = os.getenv("PORT")
    if port:
        host = os.getenv("TOURBOOK_RUNTIME_HOST", "127.0.0.1")
        scheme = os.getenv("TOURBOOK_RUNTIME_SCHEME", "http")
        return f"{scheme}://{host}:{port}".rstrip("/")

    return "http://localhost:8000"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Tourbook Booking Service")
    app_env: Literal["development", "production", "homolog", "local"] = Field(
        default="development"
    )
    app_url: str = Field(default_factory=runtime_default_app_url)
    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:3001",
        ]
    )

    mercadopago_access_token: str | None = Field(default=None)
    mercadopago_base_url: AnyHttpUrl = Field(default="https://api.mercadopago.com")
    mercadopago_webhook_secret: str | None = Field(default=None)
    payment_timeout: float = Field(default=15.0)

    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_whatsapp_number: str | None = Field(default=None)
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_user: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_from: str | None = Field(default=None)
    notification_timeout: float = Field(default=10.0)
    default_country_code: str = Field(default="55")

    nfe_api_token: str | None = Field(default=None)
    nfe_api_url: AnyHttpUrl = Field(default="https://api.focusnfe.com.br/v2")
    company_cnpj: str | None = Field(default=None)
    invoice_timeout: float = Field(default=30.0)

    auth_tokens: Annotated[Dict[str, str], NoDecode] = Field(default_factory=dict)
    refund_on_slot_conflict: bool = Field(default=True)

    model_config = SettingsConfigDict(env_prefix="TOURBOOK_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("auth_tokens", mode="before")
    def _split_tokens(cls, value):
        # "token-a=uid-1,token-b=uid-2"
        if isinstance(value, str):
            pairs = [item.strip() for item in value.split(",") if item.strip()]
            return dict(pair.split("=", 1) for pair in pairs if "=" in pair)
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


SECRET_FIELDS = {
    "mercadopago_access_token",
    "mercadopago_webhook_secret",
    "twilio_auth_token",
    "smtp_password",
    "nfe_api_token",
    "auth_tokens",
}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
