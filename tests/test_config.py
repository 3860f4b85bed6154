import yaml
import pytest
from decimal import Decimal
from kandel.core.config import (
    load_config,
    validate_config,
    AppConfig,
    ConfigError,
    DistributionConfig,
    TokenConfig,
    ChunkingConfig,
)

@pytest.fixture(autouse=True)
def no_rpc_env(monkeypatch):
    # Keep a local .env out of the picture
    monkeypatch.setattr("kandel.core.config.load_dotenv", lambda: None)
    monkeypatch.delenv("KANDEL_RPC_URL", raising=False)

def test_load_default_config():
    config = load_config(None)
    assert config.tokens.base_decimals == 18
    assert config.tokens.quote_decimals == 6
    assert config.distribution.mode == "CONSTANT_GIVES"
    assert config.distribution.ratio == Decimal("1.01")
    assert config.market.rpc_url is None

def test_load_yaml_config(tmp_path):
    config_file = tmp_path / "kandel.yaml"
    config_data = {
        "tokens": {"base_decimals": 8, "quote_decimals": 2},
        "distribution": {
            "mode": "constant_base",
            "ratio": 1.02,
            "prices": [100, "102", 104.04],
            "first_ask_index": 1,
            "base": "0.5"
        },
        "market": {"gasreq": 200000, "rpc_url": "http://yaml.node"},
        "chunking": {"max_offers_in_chunk": 10, "step": 2}
    }
    config_file.write_text(yaml.dump(config_data))

    config = load_config(str(config_file))
    assert config.tokens.base_decimals == 8
    assert config.distribution.mode == "CONSTANT_BASE"
    assert config.distribution.ratio == Decimal("1.02")
    assert config.distribution.prices == [Decimal("100"), Decimal("102"), Decimal("104.04")]
    assert config.distribution.base == Decimal("0.5")
    assert config.market.gasreq == 200000
    assert config.market.rpc_url == "http://yaml.node"
    assert config.chunking.step == 2

def test_env_overrides_rpc_url(tmp_path, monkeypatch):
    config_file = tmp_path / "kandel.yaml"
    config_file.write_text(yaml.dump({"market": {"rpc_url": "http://yaml.node"}}))
    monkeypatch.setenv("KANDEL_RPC_URL", "http://env.node")

    config = load_config(str(config_file))
    assert config.market.rpc_url == "http://env.node"

def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="Cannot read"):
        load_config(str(tmp_path / "missing.yaml"))

def test_non_numeric_value(tmp_path):
    config_file = tmp_path / "kandel.yaml"
    config_file.write_text(yaml.dump({"distribution": {"ratio": "steep"}}))
    with pytest.raises(ConfigError, match="ratio must be a number"):
        load_config(str(config_file))

def test_invalid_mode():
    with pytest.raises(ConfigError, match="Mode must be one of"):
        validate_config(AppConfig(distribution=DistributionConfig(mode="CONSTANT_QUOTE")))

def test_invalid_ratio():
    with pytest.raises(ConfigError, match="Ratio must be > 1"):
        validate_config(AppConfig(distribution=DistributionConfig(ratio=Decimal("0.99"))))

def test_first_ask_index_out_of_range():
    dist = DistributionConfig(prices=[Decimal("1"), Decimal("2")], first_ask_index=3)
    with pytest.raises(ConfigError, match="first_ask_index"):
        validate_config(AppConfig(distribution=dist))

def test_non_positive_price():
    dist = DistributionConfig(prices=[Decimal("1"), Decimal("0")])
    with pytest.raises(ConfigError, match="prices must be > 0"):
        validate_config(AppConfig(distribution=dist))

def test_invalid_decimals():
    with pytest.raises(ConfigError, match="quote_decimals"):
        validate_config(AppConfig(tokens=TokenConfig(quote_decimals=-1)))

def test_invalid_chunking():
    with pytest.raises(ConfigError, match="max_offers_in_chunk"):
        validate_config(AppConfig(chunking=ChunkingConfig(max_offers_in_chunk=0)))
    with pytest.raises(ConfigError, match="step"):
        validate_config(AppConfig(chunking=ChunkingConfig(step=0)))

def test_non_finite_numbers_rejected(tmp_path):
    config_file = tmp_path / "kandel.yaml"
    config_file.write_text(yaml.dump({"distribution": {"ratio": "nan"}}))
    with pytest.raises(ConfigError, match="ratio must be finite"):
        load_config(str(config_file))

    config_file.write_text(yaml.dump({"distribution": {"prices": ["100", "Infinity"]}}))
    with pytest.raises(ConfigError, match="prices must be finite"):
        load_config(str(config_file))

def test_empty_sections_use_defaults(tmp_path):
    config_file = tmp_path / "kandel.yaml"
    config_file.write_text("tokens:\ndistribution:\nmarket:\nchunking:\n")

    config = load_config(str(config_file))
    assert config.tokens.base_decimals == 18
    assert config.distribution.prices == []
    assert config.chunking.max_offers_in_chunk == 80
