"""
EIP-712 typed data documents for Safe creation, Safe transactions and CLOB auth.

The builders are pure: identical input always produces an identical document.
Message values use the wire encoding expected by remote signers (lower-case
addresses, 0x-hex bytes, decimal-string integers); ``to_eip712`` converts them
to the native values ``eth_account`` hashes.
"""
import json
from typing import Any, Dict, List

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak, to_bytes
from pydantic import BaseModel, ConfigDict

from .models import SafeTransaction, ZERO_ADDRESS

CREATE_PROXY_DOMAIN_NAME = "Polymarket Contract Proxy Factory"
CLOB_AUTH_DOMAIN_NAME = "ClobAuthDomain"
CLOB_AUTH_DOMAIN_VERSION = "1"
CLOB_AUTH_MESSAGE = "This message attests that I control the given wallet"

CREATE_PROXY_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "CreateProxy": [
        {"name": "paymentToken", "type": "address"},
        {"name": "payment", "type": "uint256"},
        {"name": "paymentReceiver", "type": "address"},
    ],
}

SAFE_TX_TYPES = {
    "EIP712Domain": [
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "SafeTx": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "operation", "type": "uint8"},
        {"name": "safeTxGas", "type": "uint256"},
        {"name": "baseGas", "type": "uint256"},
        {"name": "gasPrice", "type": "uint256"},
        {"name": "gasToken", "type": "address"},
        {"name": "refundReceiver", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ],
}

CLOB_AUTH_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ],
}


class TypedDataDocument(BaseModel):
    """A domain-separated EIP-712 document with wire-encoded values."""
    model_config = ConfigDict(frozen=True)

    types: Dict[str, List[Dict[str, str]]]
    primary_type: str
    domain: Dict[str, str]
    message: Dict[str, str]

    def to_dict(self) -> Dict[str, Any]:
        """Wire form, with keys in schema order."""
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain,
            "message": self.message,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_eip712(self) -> Dict[str, Any]:
        """Structure accepted by ``encode_typed_data(full_message=...)``."""
        domain_types = {f["name"]: f["type"] for f in self.types["EIP712Domain"]}
        message_types = {f["name"]: f["type"] for f in self.types[self.primary_type]}
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": {k: _native(domain_types[k], v) for k, v in self.domain.items()},
            "message": {k: _native(message_types[k], v) for k, v in self.message.items()},
        }

    def signable(self) -> SignableMessage:
        return encode_typed_data(full_message=self.to_eip712())

    def hash(self) -> bytes:
        """The 32-byte EIP-712 digest that gets signed."""
        signable = self.signable()
        return keccak(b"\x19" + signable.version + signable.header + signable.body)


def _native(type_: str, value: str) -> Any:
    if type_.startswith("uint") or type_.startswith("int"):
        return int(value, 10)
    if type_ == "bytes":
        return to_bytes(hexstr=value)
    return value


def _address(value: str) -> str:
    return value.lower()


def _hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def build_create_proxy_typed_data(
    chain_id: int,
    factory: str,
    payment_token: str = ZERO_ADDRESS,
    payment: int = 0,
    payment_receiver: str = ZERO_ADDRESS,
) -> TypedDataDocument:
    """
    Build the CreateProxy document the Safe factory verifies on createProxy.

    The factory's domain separator has no version field, so neither does this one.
    """
    return TypedDataDocument(
        types=CREATE_PROXY_TYPES,
        primary_type="CreateProxy",
        domain={
            "name": CREATE_PROXY_DOMAIN_NAME,
            "chainId": str(chain_id),
            "verifyingContract": _address(factory),
        },
        message={
            "paymentToken": _address(payment_token),
            "payment": str(payment),
            "paymentReceiver": _address(payment_receiver),
        },
    )


def build_safe_tx_typed_data(chain_id: int, safe_address: str, tx: SafeTransaction) -> TypedDataDocument:
    """
    Build the SafeTx document for a Safe transaction.

    The domain carries only chainId and verifyingContract, matching the Safe
    contract's own domain separator.
    """
    return TypedDataDocument(
        types=SAFE_TX_TYPES,
        primary_type="SafeTx",
        domain={
            "chainId": str(chain_id),
            "verifyingContract": _address(safe_address),
        },
        message={
            "to": _address(tx.to),
            "value": str(tx.value),
            "data": _hex(tx.data),
            "operation": str(int(tx.operation)),
            "safeTxGas": str(tx.safe_tx_gas),
            "baseGas": str(tx.base_gas),
            "gasPrice": str(tx.gas_price),
            "gasToken": _address(tx.gas_token),
            "refundReceiver": _address(tx.refund_receiver),
            "nonce": str(tx.nonce),
        },
    )


def build_clob_auth_typed_data(address: str, chain_id: int, timestamp: int, nonce: int = 0) -> TypedDataDocument:
    """Build the ClobAuth challenge used to derive exchange API credentials."""
    return TypedDataDocument(
        types=CLOB_AUTH_TYPES,
        primary_type="ClobAuth",
        domain={
            "name": CLOB_AUTH_DOMAIN_NAME,
            "version": CLOB_AUTH_DOMAIN_VERSION,
            "chainId": str(chain_id),
        },
        message={
            "address": _address(address),
            "timestamp": str(timestamp),
            "nonce": str(nonce),
            "message": CLOB_AUTH_MESSAGE,
        },
    )
