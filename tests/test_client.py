"""
Tests for the PolySafeClient facade.
"""
import logging
from unittest.mock import MagicMock, patch

import pytest
from eth_account import Account

from polysafe_sdk import PolySafeClient
from polysafe_sdk.config import AllowancePolicy, GasPolicy
from polysafe_sdk.exceptions import ConfigurationError
from polysafe_sdk.models import SignatureMode
from polysafe_sdk.sender import DirectTransactionSender, SafeTransactionSender
from polysafe_sdk.typed_data import build_clob_auth_typed_data
from conftest import TEST_CHAIN_ID, TEST_CONDITION_ID, TEST_OWNER, TEST_SAFE, TEST_TX_HASH


@pytest.fixture(autouse=True)
def _patched_reader(mock_reader):
    with patch("polysafe_sdk.client.ContractReader", return_value=mock_reader):
        yield


@pytest.fixture
def safe_client(local_signer, mock_w3):
    return PolySafeClient(local_signer, w3=mock_w3, chain_id=TEST_CHAIN_ID)


@pytest.fixture
def eoa_client(local_signer, mock_w3):
    return PolySafeClient(local_signer, w3=mock_w3, chain_id=TEST_CHAIN_ID, mode=SignatureMode.EOA)


def _no_approvals(reader):
    reader.erc20_balance.return_value = 0
    reader.erc20_allowance.return_value = 0
    reader.is_approved_for_all.return_value = False


class TestConstruction:
    def test_proxy_mode_rejected(self, local_signer, mock_w3):
        with pytest.raises(ConfigurationError) as exc_info:
            PolySafeClient(local_signer, w3=mock_w3, mode=SignatureMode.POLY_PROXY)
        assert "POLY_PROXY" in str(exc_info.value)

    def test_requires_endpoint(self, local_signer):
        with pytest.raises(ConfigurationError):
            PolySafeClient(local_signer)

    def test_rejects_plain_http(self, local_signer):
        with pytest.raises(ConfigurationError):
            PolySafeClient(local_signer, rpc_url="http://polygon-rpc.example.com")

    def test_unknown_chain(self, local_signer, mock_w3):
        with pytest.raises(ConfigurationError):
            PolySafeClient(local_signer, w3=mock_w3, chain_id=1)

    def test_chain_id_read_from_node(self, local_signer, mock_w3, mock_reader):
        mock_reader.chain_id.return_value = 80002
        client = PolySafeClient(local_signer, w3=mock_w3)

        assert client.chain_id == 80002
        assert client.contracts.exchange == "0xdFE02Eb6733538f8Ea35D585af8DE5958AD99E40"

    def test_local_signer_gets_direct_sender(self, safe_client):
        assert isinstance(safe_client.sender, DirectTransactionSender)
        assert safe_client.address == TEST_OWNER

    def test_from_network_honours_rpc_override(self, local_signer, monkeypatch):
        monkeypatch.setenv("POLYSAFE_RPC_AMOY", "http://localhost:8545")
        client = PolySafeClient.from_network("amoy", local_signer)

        assert client.chain_id == 80002
        assert client.w3.provider.endpoint_uri == "http://localhost:8545"

    def test_policies_read_from_environment(self, local_signer, mock_w3, monkeypatch):
        monkeypatch.setenv("POLYSAFE_SAFE_GAS_OVERHEAD", "40000")
        monkeypatch.setenv("POLYSAFE_SAFE_GAS_MULTIPLIER_PERCENT", "200")
        monkeypatch.setenv("POLYSAFE_ALLOWANCE_AMOUNT", "1000000")
        client = PolySafeClient(local_signer, w3=mock_w3, chain_id=TEST_CHAIN_ID)

        assert client.estimator.policy == GasPolicy(overhead=40_000, multiplier_percent=200)
        assert client.approvals.policy.amount == 1_000_000

    def test_explicit_policies_win(self, local_signer, mock_w3, monkeypatch):
        monkeypatch.setenv("POLYSAFE_ALLOWANCE_AMOUNT", "1000000")
        client = PolySafeClient(
            local_signer, w3=mock_w3, chain_id=TEST_CHAIN_ID, allowance_policy=AllowancePolicy(amount=5)
        )
        assert client.approvals.policy.amount == 5

    def test_repr(self, safe_client):
        assert "mode=POLY_GNOSIS_SAFE" in repr(safe_client)
        assert "chain_id=137" in repr(safe_client)


class TestSafeMode:
    def test_holder_is_safe(self, safe_client):
        assert safe_client.holder == TEST_SAFE
        assert safe_client.get_safe_address() == TEST_SAFE
        assert safe_client.is_safe_deployed()

        sender = safe_client.holder_sender()
        assert isinstance(sender, SafeTransactionSender)
        assert sender.address == TEST_SAFE

    def test_get_safe_account(self, safe_client):
        account = safe_client.get_safe_account()
        assert (account.owner, account.address, account.deployed) == (TEST_OWNER, TEST_SAFE, True)

    def test_deploy_safe(self, safe_client, mock_reader, mock_w3):
        mock_reader.get_code.return_value = b""

        assert safe_client.deploy_safe() == (TEST_SAFE, TEST_TX_HASH)
        raw = mock_w3.eth.send_raw_transaction.call_args[0][0]
        assert Account.recover_transaction(raw) == TEST_OWNER

    def test_enable_trading_relays_through_safe(self, safe_client, mock_reader, contracts):
        _no_approvals(mock_reader)
        safe_client.executor = MagicMock()
        safe_client.executor.execute.return_value = TEST_TX_HASH

        assert safe_client.enable_trading() == [TEST_TX_HASH] * 6

        calls = safe_client.executor.execute.call_args_list
        assert [c.args[0] for c in calls] == [TEST_SAFE] * 6
        assert [c.args[1] for c in calls] == [contracts.collateral] * 3 + [contracts.conditional_tokens] * 3
        mock_reader.erc20_allowance.assert_any_call(contracts.collateral, TEST_SAFE, contracts.exchange)

    def test_positions_relay_through_safe(self, safe_client, contracts):
        safe_client.executor = MagicMock()
        safe_client.executor.execute.return_value = TEST_TX_HASH

        assert safe_client.split_neg_risk(TEST_CONDITION_ID, 100) == TEST_TX_HASH
        wallet, target, value, _ = safe_client.executor.execute.call_args.args
        assert (wallet, target, value) == (TEST_SAFE, contracts.neg_risk_adapter, 0)

    def test_execute_through_safe(self, safe_client):
        safe_client.executor = MagicMock()
        safe_client.executor.execute.return_value = TEST_TX_HASH

        assert safe_client.execute_through_safe("0x" + "ab" * 20, b"\x01") == TEST_TX_HASH
        assert safe_client.executor.execute.call_args.args[:3] == (TEST_SAFE, "0x" + "ab" * 20, 0)


class TestEoaMode:
    def test_holder_is_signer(self, eoa_client):
        assert eoa_client.holder == TEST_OWNER
        assert eoa_client.holder_sender() is eoa_client.sender

    def test_enable_trading_sends_directly(self, eoa_client, mock_reader, mock_w3, contracts):
        _no_approvals(mock_reader)

        hashes = eoa_client.enable_trading()

        assert hashes == [TEST_TX_HASH] * 6
        assert mock_w3.eth.send_raw_transaction.call_count == 6
        mock_reader.erc20_balance.assert_called_with(contracts.collateral, TEST_OWNER)

    def test_redeem_sends_to_conditional_tokens(self, eoa_client, mock_reader, mock_w3, contracts, caplog):
        mock_reader.erc20_balance.side_effect = [0, 750_000]

        with caplog.at_level(logging.INFO, logger="polysafe_sdk.positions"):
            assert eoa_client.redeem(TEST_CONDITION_ID) == TEST_TX_HASH
        assert mock_w3.eth.estimate_gas.call_args.args[0]["to"] == contracts.conditional_tokens
        mock_reader.erc20_balance.assert_called_with(contracts.collateral, TEST_OWNER)
        assert "Redeemed 0.75 collateral" in caplog.text

    def test_check_balance_and_allowance(self, eoa_client, mock_reader):
        _no_approvals(mock_reader)
        snapshot = eoa_client.check_balance_and_allowance()
        assert snapshot.holder == TEST_OWNER
        assert not snapshot.trading_enabled


def test_sign_clob_auth(safe_client):
    signature = safe_client.sign_clob_auth(timestamp=1_700_000_000, nonce=3)

    assert signature.startswith("0x") and len(signature) == 132
    doc = build_clob_auth_typed_data(TEST_OWNER, TEST_CHAIN_ID, 1_700_000_000, 3)
    assert Account.recover_message(doc.signable(), signature=signature) == TEST_OWNER
