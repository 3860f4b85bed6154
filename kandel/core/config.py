import os
import logging
import yaml
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from dotenv import load_dotenv

from kandel.core.decimals import to_decimal

logger = logging.getLogger(__name__)

MAX_DECIMALS = 77
VALID_MODES = ["CONSTANT_GIVES", "CONSTANT_BASE"]

class ConfigError(Exception):
    pass

@dataclass
class TokenConfig:
    base_decimals: int = 18
    quote_decimals: int = 6

@dataclass
class DistributionConfig:
    mode: str = "CONSTANT_GIVES"
    ratio: Decimal = Decimal("1.01")
    prices: List[Decimal] = field(default_factory=list)
    first_ask_index: int = 0
    ask_gives: Decimal = Decimal("1")
    bid_gives: Decimal = Decimal("100")
    base: Decimal = Decimal("1")

@dataclass
class MarketConfig:
    gasreq: int = 150_000
    gasprice: int = 0
    offer_gasbase_bids: int = 0
    offer_gasbase_asks: int = 0
    query_timeout_seconds: float = 10.0
    rpc_url: Optional[str] = None

@dataclass
class ChunkingConfig:
    max_offers_in_chunk: int = 80
    step: int = 1

@dataclass
class AppConfig:
    tokens: TokenConfig = field(default_factory=TokenConfig)
    distribution: DistributionConfig = field(default_factory=DistributionConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)

def _decimal(value, name: str) -> Decimal:
    try:
        number = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if not number.is_finite():
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return number

def load_config(config_path: Optional[str]) -> AppConfig:
    # 1. Load env vars
    load_dotenv()

    # 2. Load yaml config if provided
    raw_yaml = {}
    if config_path:
        try:
            with open(config_path, "r", encoding="utf-8") as file:
                raw_yaml = yaml.safe_load(file) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    token_data = raw_yaml.get("tokens") or {}
    dist_data = raw_yaml.get("distribution") or {}
    market_data = raw_yaml.get("market") or {}
    chunk_data = raw_yaml.get("chunking") or {}

    try:
        app_config = AppConfig(
            tokens=TokenConfig(
                base_decimals=int(token_data.get("base_decimals", 18)),
                quote_decimals=int(token_data.get("quote_decimals", 6))
            ),
            distribution=DistributionConfig(
                mode=str(dist_data.get("mode", "CONSTANT_GIVES")).upper(),
                ratio=_decimal(dist_data.get("ratio", "1.01"), "ratio"),
                prices=[_decimal(p, "prices") for p in dist_data.get("prices") or []],
                first_ask_index=int(dist_data.get("first_ask_index", 0)),
                ask_gives=_decimal(dist_data.get("ask_gives", "1"), "ask_gives"),
                bid_gives=_decimal(dist_data.get("bid_gives", "100"), "bid_gives"),
                base=_decimal(dist_data.get("base", "1"), "base")
            ),
            market=MarketConfig(
                gasreq=int(market_data.get("gasreq", 150_000)),
                gasprice=int(market_data.get("gasprice", 0)),
                offer_gasbase_bids=int(market_data.get("offer_gasbase_bids", 0)),
                offer_gasbase_asks=int(market_data.get("offer_gasbase_asks", 0)),
                query_timeout_seconds=float(market_data.get("query_timeout_seconds", 10.0)),
                rpc_url=market_data.get("rpc_url")
            ),
            chunking=ChunkingConfig(
                max_offers_in_chunk=int(chunk_data.get("max_offers_in_chunk", 80)),
                step=int(chunk_data.get("step", 1))
            )
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in {config_path}: {e}")

    # 3. Secrets from ENV override yaml
    app_config.market.rpc_url = os.environ.get("KANDEL_RPC_URL", app_config.market.rpc_url)

    validate_config(app_config)

    return app_config

def validate_config(config: AppConfig):
    tokens = config.tokens
    dist = config.distribution

    # Token precision
    for name, decimals in (("base_decimals", tokens.base_decimals), ("quote_decimals", tokens.quote_decimals)):
        if not 0 <= decimals <= MAX_DECIMALS:
            raise ConfigError(f"{name} must be within [0, {MAX_DECIMALS}], got {decimals}")

    # Distribution
    if dist.mode not in VALID_MODES:
        raise ConfigError(f"Mode must be one of {VALID_MODES}, got {dist.mode}")

    if dist.ratio <= 1:
        raise ConfigError(f"Ratio must be > 1, got {dist.ratio}")

    if any(p <= 0 for p in dist.prices):
        raise ConfigError("All prices must be > 0.")

    if not 0 <= dist.first_ask_index <= len(dist.prices):
        raise ConfigError(f"first_ask_index must be within [0, {len(dist.prices)}], got {dist.first_ask_index}")

    if dist.ask_gives < 0 or dist.bid_gives < 0 or dist.base < 0:
        raise ConfigError("ask_gives, bid_gives and base must be >= 0.")

    # Market
    if config.market.gasreq < 0 or config.market.gasprice < 0:
        raise ConfigError("gasreq and gasprice must be >= 0.")

    if config.market.query_timeout_seconds <= 0:
        raise ConfigError("query_timeout_seconds must be > 0.")

    # Chunking
    if config.chunking.max_offers_in_chunk < 1:
        raise ConfigError("max_offers_in_chunk must be >= 1.")

    if config.chunking.step < 1:
        raise ConfigError("step must be >= 1.")

    if not config.market.rpc_url:
        logger.warning("No RPC URL configured. Provision will be estimated against the mock market.")
