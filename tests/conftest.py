"""
Pytest fixtures for the PolySafe SDK tests.
"""
import time
from unittest.mock import MagicMock

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from polysafe_sdk import _rate_limited_log
from polysafe_sdk.config import NetworkConfig
from polysafe_sdk.contracts import ContractReader
from polysafe_sdk.signer.local import LocalSigner

# Well-known development key; never holds real funds
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_OWNER = Account.from_key(TEST_PRIVATE_KEY).address
OTHER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

TEST_CHAIN_ID = 137
TEST_SAFE = to_checksum_address("0x" + "5a" * 20)
TEST_TARGET = to_checksum_address("0x" + "7b" * 20)
TEST_TX_HASH = "0x" + "11" * 32
TEST_CONDITION_ID = "0x" + "c0" * 32


@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    """Make time.sleep instantaneous so polling doesn't slow the suite down."""
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _reset_rate_limited_log():
    _rate_limited_log.reset()
    yield
    _rate_limited_log.reset()


@pytest.fixture
def contracts():
    return NetworkConfig.get_contract_config(TEST_CHAIN_ID)


@pytest.fixture
def local_signer():
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def mock_w3():
    """Web3 stand-in with sensible defaults for a single send."""
    w3 = MagicMock()
    w3.eth.chain_id = TEST_CHAIN_ID
    w3.eth.gas_price = 30_000_000_000
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.estimate_gas.return_value = 60_000
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("11" * 32)
    return w3


@pytest.fixture
def mock_reader():
    """ContractReader stand-in: a deployed Safe with nonce 0."""
    reader = MagicMock(spec=ContractReader)
    reader.compute_proxy_address.return_value = TEST_SAFE
    reader.get_code.return_value = b"\x60\x80"
    reader.safe_nonce.return_value = 0
    return reader


@pytest.fixture
def mock_sender():
    sender = MagicMock()
    sender.address = TEST_OWNER
    sender.send.return_value = TEST_TX_HASH
    return sender
