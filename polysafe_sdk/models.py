"""
Data models for the PolySafe SDK.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Union

from eth_utils import to_bytes, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = b"\x00" * 32
MAX_UINT256 = 2**256 - 1

COLLATERAL_TOKEN_DECIMALS = 6
CONDITIONAL_TOKEN_DECIMALS = 6


class SafeOperation(IntEnum):
    """Safe execution operation type"""
    CALL = 0
    DELEGATE_CALL = 1


class SignatureMode(IntEnum):
    """
    Which account trades: the key holder itself or a wallet it controls.

    The values match the signature types used by the exchange for orders.
    """
    EOA = 0
    POLY_PROXY = 1
    POLY_GNOSIS_SAFE = 2


class SafeTransaction(BaseModel):
    """
    A Safe transaction exactly as it is hashed and signed.

    Every field participates in the signature, so instances are frozen.
    """
    model_config = ConfigDict(frozen=True)

    to: str
    value: int = 0
    data: bytes = b""
    operation: SafeOperation = SafeOperation.CALL
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    nonce: int = Field(0, ge=0)

    @field_validator("to", "gas_token", "refund_receiver")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)

    @field_validator("data", mode="before")
    @classmethod
    def _hex_to_bytes(cls, value):
        if isinstance(value, str):
            return to_bytes(hexstr=value)
        return value

    @field_validator("value", "safe_tx_gas", "base_gas", "gas_price")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be non-negative")
        return value


@dataclass(frozen=True)
class AllowanceSnapshot:
    """Point-in-time balance and approval state of one holder."""
    holder: str
    balance: int
    allowance_exchange: int
    allowance_neg_risk_adapter: int
    allowance_neg_risk_exchange: int
    ctf_approved_exchange: bool
    ctf_approved_neg_risk_adapter: bool
    ctf_approved_neg_risk_exchange: bool

    @property
    def trading_enabled(self) -> bool:
        return (
            self.allowance_exchange > 0
            and self.allowance_neg_risk_adapter > 0
            and self.allowance_neg_risk_exchange > 0
            and self.ctf_approved_exchange
            and self.ctf_approved_neg_risk_adapter
            and self.ctf_approved_neg_risk_exchange
        )


@dataclass
class SmartWalletAccount:
    """Safe wallet derived for an owner. ``deployed`` is only as fresh as the last check."""
    owner: str
    address: str
    deployed: bool


def to_base_units(amount: Union[int, str, Decimal], decimals: int = COLLATERAL_TOKEN_DECIMALS) -> int:
    """
    Convert a human amount (e.g. "12.5" USDC) to integer token units.

    Raises:
        ValueError: If the amount has more precision than the token supports
    """
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(scaled)


def from_base_units(units: int, decimals: int = COLLATERAL_TOKEN_DECIMALS) -> Decimal:
    """Convert integer token units back to a human amount."""
    return Decimal(units) / (Decimal(10) ** decimals)
