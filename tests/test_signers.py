"""
Tests for the local signer and signature helpers.
"""
import pytest
from eth_account import Account

from polysafe_sdk.exceptions import SigningError
from polysafe_sdk.signer import LocalSigner, SignerKind, normalize_signature, split_signature
from polysafe_sdk.typed_data import build_create_proxy_typed_data
from conftest import TEST_CHAIN_ID, TEST_OWNER, TEST_PRIVATE_KEY, TEST_TARGET


def test_local_signer_address(local_signer):
    assert local_signer.address == TEST_OWNER
    assert local_signer.kind == SignerKind.LOCAL_KEY
    assert TEST_OWNER in repr(local_signer)


def test_local_signer_accepts_key_without_prefix():
    assert LocalSigner(TEST_PRIVATE_KEY[2:]).address == TEST_OWNER


def test_invalid_key_is_not_echoed():
    bad_key = "0x1234"
    with pytest.raises(SigningError) as exc_info:
        LocalSigner(bad_key)
    assert bad_key not in str(exc_info.value)


def test_sign_typed_data_normalizes_v(local_signer):
    doc = build_create_proxy_typed_data(TEST_CHAIN_ID, TEST_TARGET)
    signature = local_signer.sign_typed_data(doc)
    assert len(signature) == 65
    assert signature[64] in (27, 28)
    assert Account.recover_message(doc.signable(), signature=signature) == TEST_OWNER


def test_sign_transaction_recovers_sender(local_signer):
    raw = local_signer.sign_transaction({
        "nonce": 0,
        "to": TEST_TARGET,
        "value": 0,
        "gas": 21000,
        "gasPrice": 10**9,
        "data": "0x",
        "chainId": TEST_CHAIN_ID,
    })
    assert isinstance(raw, bytes)
    assert Account.recover_transaction(raw) == TEST_OWNER


def test_sign_transaction_wraps_errors(local_signer):
    with pytest.raises(SigningError) as exc_info:
        local_signer.sign_transaction({"nonce": "not-a-number"})
    assert exc_info.value.step == "sign"


class TestSignatureHelpers:
    def test_split_signature(self):
        r, s = b"\x01" * 32, b"\x02" * 32
        assert split_signature(r + s + bytes([28])) == (28, r, s)

    @pytest.mark.parametrize("raw_v,expected", [(0, 27), (1, 28), (27, 27), (28, 28)])
    def test_v_is_normalized(self, raw_v, expected):
        signature = b"\x01" * 64 + bytes([raw_v])
        assert split_signature(signature)[0] == expected
        assert normalize_signature(signature)[64] == expected

    @pytest.mark.parametrize("length", [0, 64, 66])
    def test_wrong_length_rejected(self, length):
        with pytest.raises(ValueError):
            split_signature(b"\x00" * length)
