"""Configuration management for the DEX arbitrage coordinator."""

import os
from pathlib import Path
from typing import Dict, List, Optional
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class RpcConfig(BaseModel):
    """Blockchain JSON-RPC provider configuration."""
    url: str = "http://localhost:8545"
    chain_id: int = 8453  # Base mainnet
    request_timeout_s: float = 10.0


class TokenConfig(BaseModel):
    """Token metadata."""
    address: str
    decimals: int = 18
    coingecko_id: Optional[str] = None
    reference_price_usd: Optional[float] = None  # Used by simulated sources
    max_flashloan_usd: float = 50_000.0  # Hard per-token ceiling


class ExchangeConfig(BaseModel):
    """One price source (DEX router or oracle)."""
    name: str
    kind: str = "router"  # router | oracle | simulated
    enabled: bool = True
    router_address: Optional[str] = None
    fee_bps: float = 30.0
    liquidity_usd: float = 500_000.0
    jitter_bps: float = 40.0  # Simulated sources only
    oracle_url: str = "https://api.coingecko.com/api/v3/simple/price"

    @field_validator("kind")
    @classmethod
    def _check_kind(cls, value: str) -> str:
        if value not in ("router", "oracle", "simulated"):
            raise ValueError(f"Unknown source kind: {value}")
        return value


class GasConfig(BaseModel):
    """Network gas model."""
    gas_units: int = 350_000  # Flashloan + two swaps
    default_gas_price_gwei: float = 0.1
    native_usd: float = 3400.0
    native_price_pair: str = "WETH/USDC"  # Quotes of this pair refresh native_usd
    min_cost_usd: float = 0.05
    max_cost_usd: float = 50.0
    refresh_from_rpc: bool = True


class DetectorConfig(BaseModel):
    """Opportunity detection configuration."""
    notional_usd: float = 1000.0
    min_profit_usd: float = 5.0
    flashloan_fee_bps: float = 5.0  # 0.05% Balancer-style fee


class AggregatorConfig(BaseModel):
    """Price feed aggregation configuration."""
    scan_interval_s: float = 15.0
    source_timeout_s: float = 3.0


class StoreConfig(BaseModel):
    """Opportunity store configuration."""
    staleness_window_s: float = 120.0


class ExecutionConfig(BaseModel):
    """Trade execution configuration."""
    confirmation_timeout_s: float = 60.0
    submit_timeout_s: float = 15.0
    slippage_factor: float = 0.95  # Realized share of estimated profit
    min_gas_balance_eth: float = 0.005
    missing_opportunity_policy: str = "strict_id"  # strict_id | fallback_to_best | reject
    fallback_max_age_s: float = 300.0
    settlement_contract: str = "0x0000000000000000000000000000000000000000"
    paper_revert_rate: float = 0.1
    paper_confirmation_delay_s: float = 0.2

    @field_validator("missing_opportunity_policy")
    @classmethod
    def _check_policy(cls, value: str) -> str:
        if value not in ("strict_id", "fallback_to_best", "reject"):
            raise ValueError(f"Unknown missing opportunity policy: {value}")
        return value


class FlashloanConfig(BaseModel):
    """Flashloan sizing configuration."""
    max_amount_usd: float = 10_000.0
    liquidity_fraction: float = 0.10  # percentage strategy cap fraction


class ActorSettings(BaseModel):
    """Per-actor auto trading settings."""
    min_profit_threshold: float = Field(default=5.0, ge=0)
    max_trade_amount: float = Field(default=1000.0, gt=0)
    max_slippage_pct: float = Field(default=0.5, ge=0, le=100)
    max_concurrent_trades: int = Field(default=1, ge=1)
    cooldown_between_trades: float = Field(default=30.0, gt=0)  # seconds
    only_flashloans: bool = True
    flashloan_size: float = Field(default=1000.0, gt=0)
    flashloan_strategy: str = "fixed"  # fixed | percentage | dynamic
    daily_profit_target: float = Field(default=100.0, gt=0)
    daily_loss_limit: float = Field(default=50.0, gt=0)
    failed_trade_loss_estimate: float = Field(default=5.0, ge=0)  # Gas burnt on a revert
    exchange_allow_list: List[str] = Field(default_factory=list)  # empty = all

    @field_validator("flashloan_strategy")
    @classmethod
    def _check_strategy(cls, value: str) -> str:
        if value not in ("fixed", "percentage", "dynamic"):
            raise ValueError(f"Unknown flashloan strategy: {value}")
        return value


class StorageConfig(BaseModel):
    """Storage configuration."""
    db_path: str = "dexarb.sqlite"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "dexarb.log"
    log_quotes: bool = False


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    enable_http: bool = True
    host: str = "127.0.0.1"
    port: int = 8080


class Config(BaseModel):
    """Main configuration model."""
    mode: str = "paper"  # paper | live
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    tokens: Dict[str, TokenConfig] = Field(default_factory=dict)
    pairs: List[str] = Field(default_factory=list)
    exchanges: List[ExchangeConfig] = Field(default_factory=list)
    gas: GasConfig = Field(default_factory=GasConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    flashloan: FlashloanConfig = Field(default_factory=FlashloanConfig)
    auto_trading: ActorSettings = Field(default_factory=ActorSettings)
    signing_keys: Dict[str, str] = Field(default_factory=dict)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @model_validator(mode="after")
    def _check_pairs(self) -> "Config":
        for pair in self.pairs:
            if "/" not in pair:
                raise ValueError(f"Pair must look like BASE/QUOTE: {pair}")
            for symbol in pair.split("/"):
                if self.tokens and symbol not in self.tokens:
                    raise ValueError(f"Pair {pair} references unknown token {symbol}")
        return self

    def get_fee_bps(self, exchange: str) -> float:
        """Get swap fee in basis points for an exchange."""
        for ex in self.exchanges:
            if ex.name == exchange:
                return ex.fee_bps
        return 30.0

    def get_token(self, symbol: str) -> Optional[TokenConfig]:
        """Get token metadata by symbol."""
        return self.tokens.get(symbol)

    def enabled_exchanges(self) -> List[ExchangeConfig]:
        """Get enabled price sources."""
        return [ex for ex in self.exchanges if ex.enabled]

    @classmethod
    def load_from_file(cls, config_path: str = "config.yaml") -> "Config":
        """Load configuration from YAML file with environment variable substitution."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            config_str = f.read()

        # Substitute environment variables
        for key, value in os.environ.items():
            config_str = config_str.replace(f"${{{key}}}", value)

        config_data = yaml.safe_load(config_str) or {}
        return cls(**config_data)


def get_config(config_path: str = "config.yaml") -> Config:
    """Get configuration instance."""
    return Config.load_from_file(config_path)
