from pathlib import Path
from typing import Any, Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Relayer
    relayer_enabled: bool = Field(default=True, description="Route transfers through the relayer when healthy")
    relayer_base_url: str = Field(
        default="https://relayer.example.invalid",
        description="Base URL of the relay service (or the HMAC proxy in front of it)",
    )
    relayer_hmac_secret: str = Field(
        default="",
        description="Shared secret used to sign relayer requests; empty disables signing",
    )
    relayer_health_timeout_seconds: float = Field(default=5.0, description="Relayer health check timeout")
    relayer_quote_timeout_seconds: float = Field(default=10.0, description="Relayer fee quote timeout")
    relayer_submit_timeout_seconds: float = Field(
        default=180.0,
        description="Relayer submission timeout (includes remote broadcast)",
    )
    relayer_fee_per_unit_gas: int = Field(
        default=0,
        description="Minimum gas price (wei) the relayer charges for when it does not advertise one; 0 disables",
    )
    relayer_min_amount: int = Field(
        default=0,
        description="Gross amounts below this (base units) skip the relayer entirely",
    )

    # Fees
    relayer_fee_bps: int = Field(default=50, description="Relayer service fee in basis points")
    protocol_fee_bps: int = Field(default=25, description="Shielded-pool unshield fee in basis points")

    # Gas
    gas_padding_percent: int = Field(default=20, description="Safety margin added to SDK gas estimates")
    min_gas_limit: int = Field(default=1_600_000, description="Floor applied to padded gas estimates")
    reclamation_gas_limit: int = Field(
        default=1_200_000,
        description="Conservative gas limit used to price the relayer's gas reclamation (ERC-20)",
    )
    base_token_reclamation_gas_limit: int = Field(
        default=1_000_000,
        description="Conservative gas limit used to price gas reclamation for base-token unshields",
    )

    # External APIs
    coingecko_api_key: str = Field(default="", description="Coingecko API key")
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3", description="Coingecko API base URL")
    alchemy_api_key: str = Field(default="", description="Alchemy API key")
    rpc_urls: Dict[int, str] = Field(
        default_factory=dict,
        description="Per-chain JSON-RPC URL overrides (chain id -> url)",
    )
    rpc_timeout_seconds: float = Field(default=15.0, description="JSON-RPC request timeout")

    @field_validator("relayer_fee_bps", "protocol_fee_bps")
    @classmethod
    def _validate_bps(cls, value: int) -> int:
        if value < 0 or value >= 10_000:
            raise ValueError("basis points must be within [0, 10000)")
        return value

    @field_validator("gas_padding_percent", "min_gas_limit", "reclamation_gas_limit", "base_token_reclamation_gas_limit")
    @classmethod
    def _validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    def rpc_url_for(self, chain_id: int) -> str:
        """Resolve the JSON-RPC endpoint for a chain, preferring explicit overrides."""
        if chain_id in self.rpc_urls:
            return self.rpc_urls[chain_id]
        subdomain = ALCHEMY_SUBDOMAINS.get(chain_id)
        if not subdomain:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")
        return f"https://{subdomain}.g.alchemy.com/v2/{self.alchemy_api_key}"

    def public_dict(self) -> Dict[str, Any]:
        """Settings snapshot safe to print (secrets masked)."""
        data = self.model_dump()
        for key in ("relayer_hmac_secret", "coingecko_api_key", "alchemy_api_key"):
            if data.get(key):
                data[key] = "***"
        return data


ALCHEMY_SUBDOMAINS: Dict[int, str] = {
    1: "eth-mainnet",
    10: "opt-mainnet",
    56: "bnb-mainnet",
    137: "polygon-mainnet",
    42161: "arb-mainnet",
}


settings = Settings()
