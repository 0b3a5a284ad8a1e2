"""
Tests for split/merge/redeem routing.
"""
import logging
from unittest.mock import MagicMock, call

import pytest
from eth_abi import decode
from eth_utils import function_signature_to_4byte_selector

from polysafe_sdk.exceptions import ChainReadError, ConfigurationError, EncodingError
from polysafe_sdk.models import SignatureMode, ZERO_BYTES32
from polysafe_sdk.positions import PositionOperations, condition_id_bytes
from conftest import TEST_CONDITION_ID, TEST_OWNER, TEST_SAFE, TEST_TX_HASH

CONDITION = bytes.fromhex(TEST_CONDITION_ID[2:])


def _selector(signature):
    return function_signature_to_4byte_selector(signature)


@pytest.fixture
def eoa_ops(contracts, mock_sender):
    return PositionOperations(contracts, SignatureMode.EOA, mock_sender)


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute.return_value = TEST_TX_HASH
    return executor


@pytest.fixture
def safe_ops(contracts, mock_sender, executor):
    return PositionOperations(
        contracts, SignatureMode.POLY_GNOSIS_SAFE, mock_sender, executor=executor, wallet=TEST_SAFE
    )


class TestBinaryMarkets:
    @pytest.mark.parametrize("method,signature", [
        ("split", "splitPosition(address,bytes32,bytes32,uint256[],uint256)"),
        ("merge", "mergePositions(address,bytes32,bytes32,uint256[],uint256)"),
    ])
    def test_split_and_merge_use_binary_partition(self, eoa_ops, mock_sender, contracts, method, signature):
        assert getattr(eoa_ops, method)(TEST_CONDITION_ID, 1_000_000) == TEST_TX_HASH

        target, data = mock_sender.send.call_args[0]
        assert target == contracts.conditional_tokens
        assert data[:4] == _selector(signature)
        collateral, parent, condition, partition, amount = decode(
            ["address", "bytes32", "bytes32", "uint256[]", "uint256"], data[4:]
        )
        assert collateral.lower() == contracts.collateral.lower()
        assert parent == ZERO_BYTES32
        assert condition == CONDITION
        assert list(partition) == [1, 2]
        assert amount == 1_000_000

    def test_redeem_uses_binary_index_sets(self, eoa_ops, mock_sender, contracts):
        eoa_ops.redeem(CONDITION)

        target, data = mock_sender.send.call_args[0]
        assert target == contracts.conditional_tokens
        assert data[:4] == _selector("redeemPositions(address,bytes32,bytes32,uint256[])")
        _, parent, condition, index_sets = decode(["address", "bytes32", "bytes32", "uint256[]"], data[4:])
        assert parent == ZERO_BYTES32
        assert condition == CONDITION
        assert list(index_sets) == [1, 2]


class TestNegRiskMarkets:
    @pytest.mark.parametrize("method,signature", [
        ("split_neg_risk", "splitPosition(bytes32,uint256)"),
        ("merge_neg_risk", "mergePositions(bytes32,uint256)"),
    ])
    def test_single_index_variants(self, eoa_ops, mock_sender, contracts, method, signature):
        getattr(eoa_ops, method)(TEST_CONDITION_ID, 250_000)

        target, data = mock_sender.send.call_args[0]
        assert target == contracts.neg_risk_adapter
        assert data[:4] == _selector(signature)
        assert decode(["bytes32", "uint256"], data[4:]) == (CONDITION, 250_000)

    def test_redeem_neg_risk(self, eoa_ops, mock_sender, contracts):
        eoa_ops.redeem_neg_risk(TEST_CONDITION_ID, [10, 0])

        target, data = mock_sender.send.call_args[0]
        assert target == contracts.neg_risk_adapter
        assert data[:4] == _selector("redeemPositions(bytes32,uint256[])")
        condition, amounts = decode(["bytes32", "uint256[]"], data[4:])
        assert condition == CONDITION
        assert list(amounts) == [10, 0]


class TestModeRouting:
    def test_safe_mode_goes_through_executor(self, safe_ops, executor, mock_sender, contracts):
        assert safe_ops.split(TEST_CONDITION_ID, 5) == TEST_TX_HASH

        wallet, target, value, data = executor.execute.call_args[0]
        assert (wallet, target, value) == (TEST_SAFE, contracts.conditional_tokens, 0)
        assert data[:4] == _selector("splitPosition(address,bytes32,bytes32,uint256[],uint256)")
        mock_sender.send.assert_not_called()

    def test_same_calldata_in_both_modes(self, eoa_ops, safe_ops, executor, mock_sender):
        eoa_ops.merge_neg_risk(TEST_CONDITION_ID, 9)
        safe_ops.merge_neg_risk(TEST_CONDITION_ID, 9)
        assert mock_sender.send.call_args[0][1] == executor.execute.call_args[0][3]

    def test_proxy_mode_rejected(self, contracts, mock_sender):
        with pytest.raises(ConfigurationError):
            PositionOperations(contracts, SignatureMode.POLY_PROXY, mock_sender)

    def test_safe_mode_requires_executor(self, contracts, mock_sender):
        with pytest.raises(ConfigurationError):
            PositionOperations(contracts, SignatureMode.POLY_GNOSIS_SAFE, mock_sender)


class TestRedeemBalanceLogging:
    @pytest.fixture
    def reader(self):
        reader = MagicMock()
        reader.erc20_balance.side_effect = [1_000_000, 3_500_000]
        return reader

    def test_logs_collateral_paid_out(self, contracts, mock_sender, executor, reader, caplog):
        ops = PositionOperations(
            contracts, SignatureMode.POLY_GNOSIS_SAFE, mock_sender,
            executor=executor, wallet=TEST_SAFE, reader=reader,
        )
        with caplog.at_level(logging.INFO, logger="polysafe_sdk.positions"):
            assert ops.redeem(TEST_CONDITION_ID) == TEST_TX_HASH

        assert reader.erc20_balance.call_args_list == [
            call(contracts.collateral, TEST_SAFE),
            call(contracts.collateral, TEST_SAFE),
        ]
        assert f"Redeemed 2.5 collateral for {TEST_SAFE}" in caplog.text

    def test_neg_risk_redeem_reads_eoa_balance(self, contracts, mock_sender, reader, caplog):
        ops = PositionOperations(contracts, SignatureMode.EOA, mock_sender, reader=reader)
        with caplog.at_level(logging.INFO, logger="polysafe_sdk.positions"):
            ops.redeem_neg_risk(TEST_CONDITION_ID, [10, 0])

        reader.erc20_balance.assert_called_with(contracts.collateral, TEST_OWNER)
        assert "Redeemed 2.5 collateral" in caplog.text

    def test_failed_balance_read_before_redeem_submits_nothing(self, eoa_ops, mock_sender, reader):
        reader.erc20_balance.side_effect = ChainReadError("rpc down", step="read")
        eoa_ops.reader = reader

        with pytest.raises(ChainReadError):
            eoa_ops.redeem(TEST_CONDITION_ID)
        mock_sender.send.assert_not_called()

    def test_failed_balance_read_after_redeem_keeps_hash(self, eoa_ops, reader, caplog):
        reader.erc20_balance.side_effect = [1_000_000, ChainReadError("rpc down", step="read")]
        eoa_ops.reader = reader

        assert eoa_ops.redeem(TEST_CONDITION_ID) == TEST_TX_HASH
        assert "Could not read collateral balance" in caplog.text

    def test_split_does_not_read_balance(self, eoa_ops, reader):
        eoa_ops.reader = reader
        eoa_ops.split(TEST_CONDITION_ID, 1)
        reader.erc20_balance.assert_not_called()


class TestConditionId:
    def test_accepts_hex_and_bytes(self):
        assert condition_id_bytes(TEST_CONDITION_ID) == CONDITION
        assert condition_id_bytes(CONDITION) == CONDITION

    @pytest.mark.parametrize("value", ["0x1234", b"\x01" * 31, "0xnothex"])
    def test_rejects_wrong_length(self, value):
        with pytest.raises(EncodingError):
            condition_id_bytes(value)
