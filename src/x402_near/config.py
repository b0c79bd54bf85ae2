"""Environment-driven settings for the three x402-near roles.

Entry points call ``load_dotenv()`` first, then ``<Settings>.from_env()``.
Missing required variables raise ``ConfigurationError`` naming all of them,
so a misconfigured service refuses to start.
"""

from __future__ import annotations

from typing import Mapping, Optional

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from x402_near.exceptions import ConfigurationError
from x402_near.facilitator import DEFAULT_SETTLE_TIMEOUT, RelayerConfig
from x402_near.networks import get_rpc_url
from x402_near.types import is_atomic_amount

DEFAULT_NETWORK = "testnet"
DEFAULT_PRICE_ATOMIC = "1000"
DEFAULT_SELLER_PORT = 4021
DEFAULT_FACILITATOR_PORT = 4022


def _describe(error: ValidationError) -> str:
    errors = error.errors()
    missing = [str(e["loc"][0]) for e in errors if e["type"] == "missing"]
    if missing:
        return f"Missing required environment variables: {', '.join(missing)}"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return f"Invalid {location}: {first['msg']}"
    return f"Invalid settings: {first['msg']}"


class _RoleSettings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None):
        """Load settings from ``env``, or from the process environment.

        Raises:
            ConfigurationError: If a required variable is missing or a value
                does not parse.
        """
        try:
            if env is None:
                return cls()
            return cls.model_validate({name: value for name, value in env.items() if value})
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e


class FacilitatorSettings(_RoleSettings):
    relayer_account_id: str = Field(min_length=1, validation_alias="RELAYER_ACCOUNT_ID")
    relayer_private_key: SecretStr = Field(validation_alias="RELAYER_PRIVATE_KEY")
    network: str = Field(DEFAULT_NETWORK, validation_alias="NEAR_NETWORK")
    rpc_url: Optional[str] = Field(None, validation_alias="NEAR_RPC")
    port: int = Field(DEFAULT_FACILITATOR_PORT, validation_alias="FACILITATOR_PORT")
    settle_timeout: float = Field(
        DEFAULT_SETTLE_TIMEOUT, gt=0, validation_alias="SETTLE_TIMEOUT_SECONDS"
    )

    @model_validator(mode="after")
    def _resolve_rpc_url(self) -> FacilitatorSettings:
        self.rpc_url = get_rpc_url(self.network, self.rpc_url)
        return self

    def relayer_config(self) -> RelayerConfig:
        return RelayerConfig(
            account_id=self.relayer_account_id,
            private_key=self.relayer_private_key.get_secret_value(),
            network=self.network,
            rpc_url=self.rpc_url,
            settle_timeout=self.settle_timeout,
        )


class SellerSettings(_RoleSettings):
    token_account_id: str = Field(min_length=1, validation_alias="TOKEN_ACCOUNT_ID")
    seller_account_id: str = Field(min_length=1, validation_alias="SELLER_ACCOUNT_ID")
    network: str = Field(DEFAULT_NETWORK, validation_alias="NEAR_NETWORK")
    price_atomic: str = Field(DEFAULT_PRICE_ATOMIC, validation_alias="PRICE_ATOMIC")
    port: int = Field(DEFAULT_SELLER_PORT, validation_alias="SELLER_PORT")
    facilitator_port: int = Field(
        DEFAULT_FACILITATOR_PORT, validation_alias="FACILITATOR_PORT"
    )
    facilitator_url: Optional[str] = Field(None, validation_alias="FACILITATOR_URL")

    @field_validator("price_atomic")
    @classmethod
    def validate_price_atomic(cls, v: str) -> str:
        if not is_atomic_amount(v):
            raise ValueError(f"must be a non-negative integer, got {v!r}")
        return v

    @model_validator(mode="after")
    def _default_facilitator_url(self) -> SellerSettings:
        if not self.facilitator_url:
            self.facilitator_url = f"http://localhost:{self.facilitator_port}"
        return self


class BuyerSettings(_RoleSettings):
    buyer_account_id: str = Field(min_length=1, validation_alias="BUYER_ACCOUNT_ID")
    buyer_private_key: SecretStr = Field(validation_alias="BUYER_PRIVATE_KEY")
    network: str = Field(DEFAULT_NETWORK, validation_alias="NEAR_NETWORK")
    rpc_url: Optional[str] = Field(None, validation_alias="NEAR_RPC")
    seller_port: int = Field(DEFAULT_SELLER_PORT, validation_alias="SELLER_PORT")
    resource_url: Optional[str] = Field(None, validation_alias="RESOURCE_URL")

    @model_validator(mode="after")
    def _resolve_urls(self) -> BuyerSettings:
        self.rpc_url = get_rpc_url(self.network, self.rpc_url)
        if not self.resource_url:
            self.resource_url = (
                f"http://localhost:{self.seller_port}/weather?city=San%20Jose"
            )
        return self
