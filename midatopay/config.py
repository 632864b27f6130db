"""
MidatoPay Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

import logging
from decimal import Decimal
from typing import Dict, Literal

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MidatoPayConfig(BaseSettings):
    """Configuration for the MidatoPay API server, chain watcher and CLI"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    api_host: str = Field(default="0.0.0.0", description="Host to bind the server to")
    api_port: int = Field(default=3001, description="Port to bind the server to")

    # Network Configuration
    network: Literal["starknet-sepolia", "starknet-mainnet"] = Field(default="starknet-sepolia")
    starknet_rpc_url: str = Field(default="https://starknet-sepolia.public.blastapi.io/rpc/v0_7")
    rpc_timeout_seconds: float = Field(default=10.0, description="Timeout for a single RPC call")
    finality_timeout_seconds: float = Field(default=120.0, description="Max wait for a tx receipt")
    finality_poll_seconds: float = Field(default=2.0)

    # Contracts
    payment_gateway_address: str = Field(
        default="0x062161e7494635ec85e2f3e89bde170b433b8d4b07286c2754a9676fa32bbbb5",
        description="PaymentGateway contract that emits PaymentReceived"
    )
    usdt_token_address: str = Field(default="0x068f5c6a61780768455de69077e07e89787839bf8166decfbf92b645209c0fb8")
    strk_token_address: str = Field(default="0x04718f5a0fc34cc1af16a1cdee98ffb20c31f5cd61d6ab07201858f4287c938d")
    oracle_address: str = Field(default="0x01d5f1e352b69065229f872828a2ccaf9182302a34a326fe503df66c042e498c")
    account_class_hash: str = Field(
        default="0x061dac032f228abef9c6626f995015233097ae253a7f72d68552db02f2971b8f",
        description="Account class used to derive counterfactual merchant addresses"
    )

    # Payment sizing (static table, ARS per token)
    fiat_currency: str = Field(default="ARS")
    token_rates: Dict[str, Decimal] = Field(
        default={"USDT": Decimal("1380"), "STRK": Decimal("2500")}
    )
    token_decimals: Dict[str, int] = Field(default={"USDT": 6, "STRK": 18})
    payment_expiry_minutes: int = Field(default=30)

    # Chain watcher
    watcher_enabled: bool = Field(default=True)
    poll_interval_seconds: float = Field(default=10.0)
    event_lookback_blocks: int = Field(default=100)
    event_chunk_size: int = Field(default=100)

    # Oracle
    price_cache_seconds: int = Field(default=30)
    price_update_interval_seconds: int = Field(default=30)
    price_margin_percent: Decimal = Field(default=Decimal("2"))

    # Database
    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")

    # Wallet
    wallet_store_dir: str = Field(default=".midatopay")

    # CORS / rate limiting
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )
    rate_limit: str = Field(default="100/15minutes")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    # Development
    debug: bool = Field(default=False)
    reload: bool = Field(default=False)

    @field_validator("payment_gateway_address", "usdt_token_address", "strk_token_address", "oracle_address")
    @classmethod
    def validate_hex_address(cls, v):
        v = v.strip().lower()
        if v and not v.startswith("0x"):
            return f"0x{v}"
        return v

    @property
    def token_addresses(self) -> Dict[str, str]:
        return {"USDT": self.usdt_token_address, "STRK": self.strk_token_address}

    @property
    def database_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


# Singleton instance
_config: MidatoPayConfig | None = None


def get_config() -> MidatoPayConfig:
    """Get or create configuration singleton"""
    global _config
    if _config is None:
        _config = MidatoPayConfig()
    return _config


def configure_logging(config: MidatoPayConfig) -> None:
    """Configure structlog from the log_level / log_format settings"""
    renderer = (
        structlog.processors.JSONRenderer()
        if config.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
    )
