from __future__ import annotations

from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name} is not configured")
        self.name = name


class ServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    SERVICE_NAME: str = "service"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str | None = None
    GEODATA_BASE_URL: str | None = None
    GEODATA_TIMEOUT_SECONDS: float = 10.0
    GEOLOCATION_BASE_URL: str | None = None
    INTERNAL_API_HMAC_SECRET: str | None = None
    PAYSTACK_SECRET_KEY: str | None = None
    PAYSTACK_PUBLIC_KEY: str | None = None
    PAYSTACK_API_BASE_URL: str | None = None
    PAYMENT_CURRENCY: str = "KES"
    PAYMENT_REFERENCE_NAMESPACE: str = "healthcheck"
    PREMIUM_ADVICE_AMOUNT: int = 100

    def require(self, name: str) -> Any:
        value = getattr(self, name)
        if value is None or value == "":
            raise ConfigurationError(name)
        return value

    def secret_values(self) -> list[str]:
        return [value for value in (self.PAYSTACK_SECRET_KEY, self.INTERNAL_API_HMAC_SECRET) if value]


def load_settings(service_name: str, **overrides: Any) -> ServiceSettings:
    return ServiceSettings(SERVICE_NAME=service_name, **overrides)
