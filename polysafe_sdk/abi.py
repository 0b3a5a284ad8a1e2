"""
Minimal ABI fragments and calldata encoders for the contracts the SDK touches.
"""
from typing import Any, List, Sequence, Tuple

from eth_abi import encode
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_utils import function_signature_to_4byte_selector

from .exceptions import EncodingError
from .models import SafeOperation, ZERO_ADDRESS, ZERO_BYTES32

ERC20_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

CONDITIONAL_TOKENS_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "address", "name": "operator", "type": "address"},
        ],
        "name": "isApprovedForAll",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
]

SAFE_ABI = [
    {
        "inputs": [],
        "name": "nonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

SAFE_PROXY_FACTORY_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "computeProxyAddress",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def encode_call(signature: str, arg_types: Sequence[str], args: Sequence[Any]) -> bytes:
    """
    ABI-encode a function call: 4-byte selector followed by the packed arguments.

    Args:
        signature: Canonical signature, e.g. "approve(address,uint256)"
        arg_types: ABI types matching the signature
        args: Argument values

    Returns:
        Calldata bytes

    Raises:
        EncodingError: If the arguments cannot be packed
    """
    selector = function_signature_to_4byte_selector(signature)
    try:
        return selector + encode(list(arg_types), list(args))
    except (AbiEncodingError, TypeError, ValueError, OverflowError) as e:
        raise EncodingError(f"Failed to encode {signature}: {e}", step="encode") from e


def encode_approve(spender: str, amount: int) -> bytes:
    return encode_call("approve(address,uint256)", ["address", "uint256"], [spender, amount])


def encode_set_approval_for_all(operator: str, approved: bool = True) -> bytes:
    return encode_call("setApprovalForAll(address,bool)", ["address", "bool"], [operator, approved])


def encode_split_position(
    collateral: str, condition_id: bytes, partition: List[int], amount: int
) -> bytes:
    return encode_call(
        "splitPosition(address,bytes32,bytes32,uint256[],uint256)",
        ["address", "bytes32", "bytes32", "uint256[]", "uint256"],
        [collateral, ZERO_BYTES32, condition_id, partition, amount],
    )


def encode_merge_positions(
    collateral: str, condition_id: bytes, partition: List[int], amount: int
) -> bytes:
    return encode_call(
        "mergePositions(address,bytes32,bytes32,uint256[],uint256)",
        ["address", "bytes32", "bytes32", "uint256[]", "uint256"],
        [collateral, ZERO_BYTES32, condition_id, partition, amount],
    )


def encode_redeem_positions(collateral: str, condition_id: bytes, index_sets: List[int]) -> bytes:
    return encode_call(
        "redeemPositions(address,bytes32,bytes32,uint256[])",
        ["address", "bytes32", "bytes32", "uint256[]"],
        [collateral, ZERO_BYTES32, condition_id, index_sets],
    )


# NegRisk adapter variants take the condition and a single amount
def encode_neg_risk_split(condition_id: bytes, amount: int) -> bytes:
    return encode_call("splitPosition(bytes32,uint256)", ["bytes32", "uint256"], [condition_id, amount])


def encode_neg_risk_merge(condition_id: bytes, amount: int) -> bytes:
    return encode_call("mergePositions(bytes32,uint256)", ["bytes32", "uint256"], [condition_id, amount])


def encode_neg_risk_redeem(condition_id: bytes, amounts: List[int]) -> bytes:
    return encode_call("redeemPositions(bytes32,uint256[])", ["bytes32", "uint256[]"], [condition_id, amounts])


def encode_simulate_and_revert(target: str, payload: bytes) -> bytes:
    return encode_call("simulateAndRevert(address,bytes)", ["address", "bytes"], [target, payload])


EXEC_TRANSACTION_SIGNATURE = (
    "execTransaction(address,uint256,bytes,uint8,uint256,uint256,uint256,address,address,bytes)"
)
EXEC_TRANSACTION_TYPES = [
    "address", "uint256", "bytes", "uint8", "uint256",
    "uint256", "uint256", "address", "address", "bytes",
]


def encode_exec_transaction(
    to: str,
    value: int,
    data: bytes,
    operation: SafeOperation,
    safe_tx_gas: int,
    signatures: bytes,
    base_gas: int = 0,
    gas_price: int = 0,
    gas_token: str = ZERO_ADDRESS,
    refund_receiver: str = ZERO_ADDRESS,
) -> bytes:
    """Encode the Safe's single-call execution entry point."""
    return encode_call(
        EXEC_TRANSACTION_SIGNATURE,
        EXEC_TRANSACTION_TYPES,
        [to, value, data, int(operation), safe_tx_gas, base_gas, gas_price,
         gas_token, refund_receiver, signatures],
    )


CREATE_PROXY_SIGNATURE = "createProxy(address,uint256,address,(uint8,bytes32,bytes32))"
CREATE_PROXY_TYPES = ["address", "uint256", "address", "(uint8,bytes32,bytes32)"]


def encode_create_proxy(
    payment_token: str, payment: int, payment_receiver: str, vrs: Tuple[int, bytes, bytes]
) -> bytes:
    """Encode the factory's createProxy call with the owner's (v, r, s) signature."""
    return encode_call(
        CREATE_PROXY_SIGNATURE,
        CREATE_PROXY_TYPES,
        [payment_token, payment, payment_receiver, vrs],
    )
