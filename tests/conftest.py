"""
Pytest configuration and shared fixtures
Synthetic Root/Token/Client buffers are built with the codec's own layout encoder
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List

import pytest
import yaml
from solders.pubkey import Pubkey

from hype.core.accounts import (
    CLIENT_LAYOUT,
    NETWORK_RECORD_LAYOUT,
    NETWORK_RECORD_LENGTH,
    ROOT_LAYOUT,
    ROOT_NETWORK_RECORDS_OFFSET,
    TOKEN_LAYOUT,
    AccountTag,
    ShortRoot,
    decode_root_account,
)
from hype.core.codec import encode_fields, layout_size
from hype.core.metrics import MetricsCollector, get_metrics


DECS_FACTOR = 1_000_000
CREATED = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fresh_metrics():
    """Global metrics collector, emptied for the test"""
    metrics = get_metrics()
    metrics.reset()
    yield metrics
    metrics.reset()


@pytest.fixture
def network_values() -> List[Dict[str, Any]]:
    return [
        {"max_length": 15, "validator": Pubkey.new_unique(), "descriptor": "twitter", "mask": "a-z0-9_"},
        {"max_length": 24, "validator": Pubkey.new_unique(), "descriptor": "telegram", "mask": "a-z0-9_"},
    ]


@pytest.fixture
def root_values(network_values) -> Dict[str, Any]:
    """
    Scalar fields of a valid root account

    Curve parameters: max supply 1,000,000, init price 0.0001,
    fee rate 1%, min fees 0.01
    """
    return {
        "tag": AccountTag.ROOT,
        "version": 0,
        "admin": Pubkey.new_unique(),
        "fee_wallet": Pubkey.new_unique(),
        "base_crncy_mint": Pubkey.new_unique(),
        "base_crncy_program_address": Pubkey.new_unique(),
        "clients_count": 42,
        "tokens_count": 7,
        "fees": Decimal("12.5"),
        "networks_count": len(network_values),
        "base_crncy_decs_factor": DECS_FACTOR,
        "slot": 250_000_000,
        "time": CREATED,
        "decimals": 6,
        "supply": Decimal("1500.25"),
        "tvl": Decimal("320.000001"),
        "counter": 99,
        "all_time_base_crncy_volume": Decimal("10000"),
        "all_time_tokens_volume": Decimal("2000"),
        "holder_fees": Decimal("3.3"),
        "init_price": Decimal("0.0001"),
        "max_supply": Decimal("1000000"),
        "fee_ratio": Decimal("0.5"),
        "fee_rate": Decimal("0.01"),
        "creation_fee": Decimal("1.5"),
        "max_networks_count": 8,
        "creation_time": CREATED,
        "min_fees": Decimal("0.01"),
        "operator_name": "hype",
        "ref_duration": 2_592_000,
        "mask": 3,
        "ref_discount": Decimal("0.1"),
        "ref_ratio": Decimal("0.2"),
        "url_prefix": "https://hype.vote/",
    }


@pytest.fixture
def build_root_buffer():
    """Factory: encode root values and network records into an account buffer"""
    def build(values: Dict[str, Any], networks: List[Dict[str, Any]]) -> bytes:
        size = ROOT_NETWORK_RECORDS_OFFSET + NETWORK_RECORD_LENGTH * max(len(networks), 1)
        buf = encode_fields(values, ROOT_LAYOUT, size=size, decs_factor=values["base_crncy_decs_factor"])
        for i, network in enumerate(networks):
            encode_fields(
                network,
                NETWORK_RECORD_LAYOUT,
                buf=buf,
                base=ROOT_NETWORK_RECORDS_OFFSET + NETWORK_RECORD_LENGTH * i
            )
        return bytes(buf)
    return build


@pytest.fixture
def root_buffer(build_root_buffer, root_values, network_values) -> bytes:
    return build_root_buffer(root_values, network_values)


@pytest.fixture
def root_address() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def short_root(root_buffer, root_address) -> ShortRoot:
    """Root context decoded from the synthetic buffer"""
    return decode_root_account(root_buffer).to_short(root_address)


@pytest.fixture
def token_values() -> Dict[str, Any]:
    return {
        "tag": AccountTag.TOKEN,
        "version": 0,
        "id": 17,
        "mint": Pubkey.new_unique(),
        "program_address": Pubkey.new_unique(),
        "creator": Pubkey.new_unique(),
        "creation_time": CREATED,
        "time": datetime(2024, 3, 2, tzinfo=timezone.utc),
        "supply": Decimal("100"),
        "address": "elonmusk",
        "network": 0,
        "validation": 1,
        "slot": 250_000_100,
        "all_time_trades_count": 12,
        "all_time_base_crncy_volume": Decimal("45.5"),
        "all_time_tokens_volume": Decimal("300"),
    }


@pytest.fixture
def token_buffer(token_values) -> bytes:
    return bytes(encode_fields(token_values, TOKEN_LAYOUT, decs_factor=DECS_FACTOR))


@pytest.fixture
def client_values() -> Dict[str, Any]:
    return {
        "tag": AccountTag.CLIENT,
        "version": 0,
        "id": Pubkey.new_unique(),
        "wallet": Pubkey.new_unique(),
        "nickname": "alice",
        "ref_stop": datetime(2024, 4, 1, tzinfo=timezone.utc),
        "ref_paid": Decimal("1.25"),
        "ref_discount": 100,
        "ref_ratio": 200,
        "all_time_base_crncy_volume": Decimal("80"),
        "all_time_tokens_volume": Decimal("640"),
        "ref_address": Pubkey.new_unique(),
    }


@pytest.fixture
def client_buffer(client_values) -> bytes:
    return bytes(encode_fields(client_values, CLIENT_LAYOUT, size=layout_size(CLIENT_LAYOUT), decs_factor=DECS_FACTOR))


@pytest.fixture
def test_config_dict() -> Dict[str, Any]:
    """
    Sample configuration dictionary for testing

    Returns valid config that can be modified per test
    """
    return {
        "protocol": {
            "program_id": "HYPExvaQRQHrkCNc1DAHJoByUeBqFvkJyhtpFdacLcdH",
            "version": 0,
            "rpc_url": "https://rpc-mainnet.hype.vote",
            "commitment": "confirmed",
            "accounts_batch_limit": 100
        },
        "logging": {
            "level": "DEBUG",
            "format": "json",
            "output_file": None
        },
        "metrics": {
            "enable_histogram": True
        },
        "compute_budget": {
            "units": 300000,
            "unit_price": 25000
        }
    }


@pytest.fixture
def test_config_file(test_config_dict, tmp_path):
    """
    Create a temporary config file for testing

    Returns path to temporary YAML config file
    """
    config_file = tmp_path / "test_config.yml"
    with open(config_file, 'w') as f:
        yaml.dump(test_config_dict, f)
    return str(config_file)


@pytest.fixture
def metrics_collector():
    """Standalone metrics collector"""
    return MetricsCollector(enable_histogram=True)
