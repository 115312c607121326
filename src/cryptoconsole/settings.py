from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator


class ExchangeCredentials(BaseModel):
    api_key: SecretStr
    api_secret: SecretStr
    passphrase: SecretStr | None = None
    memo: SecretStr | None = None

    model_config = {"extra": "forbid"}


class ExchangeSettings(BaseModel):
    enabled: bool = True
    base_url: str | None = None
    alt_base_url: str | None = None
    credentials: ExchangeCredentials | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


class TransportSettings(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    initial_backoff_seconds: float = Field(default=1.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    model_config = {"extra": "forbid"}


class PollingSettings(BaseModel):
    interval_seconds: float = Field(default=10, gt=0)
    max_wait_seconds: float = Field(default=1800, gt=0)

    model_config = {"extra": "forbid"}


class AddressConfig(BaseModel):
    address: str
    memo: str | None = None
    memo_required: bool = False

    model_config = {"extra": "forbid"}


def _upper_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).strip().upper(): v for k, v in value.items()}
    return value


class Settings(BaseModel):
    exchanges: dict[str, ExchangeSettings] = Field(default_factory=dict)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    network_priority: dict[str, list[str]] = Field(default_factory=dict)
    withdrawal_addresses: dict[str, dict[str, dict[str, AddressConfig]]] = Field(default_factory=dict)
    supported_networks_fallback: dict[str, dict[str, list[str]]] = Field(default_factory=dict)
    withdraw_fees_fallback: dict[str, dict[str, dict[str, str]]] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @field_validator("exchanges", mode="before")
    @classmethod
    def _canonical_exchange_names(cls, value: Any) -> Any:
        from .exchanges.normalization import canonical_exchange_name

        if isinstance(value, dict):
            return {canonical_exchange_name(k): v for k, v in value.items()}
        return value

    @field_validator("network_priority", mode="before")
    @classmethod
    def _upper_assets(cls, value: Any) -> Any:
        return _upper_keys(value)

    @field_validator(
        "withdrawal_addresses",
        "supported_networks_fallback",
        "withdraw_fees_fallback",
        mode="before",
    )
    @classmethod
    def _canonical_nested_keys(cls, value: Any, info: ValidationInfo) -> Any:
        from .exchanges.normalization import canonical_exchange_name

        if not isinstance(value, dict):
            return value
        result = {canonical_exchange_name(k): _upper_keys(v) for k, v in value.items()}
        if info.field_name == "withdraw_fees_fallback":
            # YAML yields floats for bare numbers; keep fee entries as text until resolved
            for assets in result.values():
                if not isinstance(assets, dict):
                    continue
                for asset, fees in assets.items():
                    if isinstance(fees, dict):
                        assets[asset] = {k: "" if v is None else str(v) for k, v in fees.items()}
        return result

    def credentials_for(self, exchange: str) -> ExchangeCredentials | None:
        cfg = self.exchanges.get(exchange)
        return cfg.credentials if cfg else None

    def address_for(self, exchange: str, asset: str, network: str) -> AddressConfig | None:
        from .exchanges.normalization import normalize_network

        by_network = self.withdrawal_addresses.get(exchange, {}).get(asset.upper(), {})
        wanted = normalize_network(network, asset)
        for label, config in by_network.items():
            if normalize_network(label, asset) == wanted:
                return config
        return None

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        for exch in data.get("exchanges", {}).values():
            creds = exch.get("credentials")
            if isinstance(creds, dict):
                for key in ("api_key", "api_secret", "passphrase", "memo"):
                    if creds.get(key) is not None:
                        creds[key] = "***"
        return data


def parse_positive_decimal(raw: Any) -> Decimal | None:
    """Return ``raw`` as a positive Decimal, or None when blank, invalid or not positive."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value
