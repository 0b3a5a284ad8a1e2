"""
Split, merge and redeem conditional-token positions from an EOA or a Safe.
"""
import logging
from typing import List, Optional, Union

from eth_utils import to_bytes

from .abi import (
    encode_merge_positions,
    encode_neg_risk_merge,
    encode_neg_risk_redeem,
    encode_neg_risk_split,
    encode_redeem_positions,
    encode_split_position,
)
from .config import ContractConfig
from .contracts import ContractReader
from .exceptions import ChainReadError, ConfigurationError, EncodingError
from .executor import SafeTransactionExecutor
from .models import SignatureMode, from_base_units
from .sender import TransactionSender

logger = logging.getLogger(__name__)

# Outcome index sets of a binary market: YES = 0b01, NO = 0b10
BINARY_PARTITION = [1, 2]

ConditionId = Union[str, bytes]


def condition_id_bytes(condition_id: ConditionId) -> bytes:
    """
    Normalize a condition id to exactly 32 bytes.

    Raises:
        EncodingError: If the value is not a 32-byte hex string or bytes
    """
    try:
        value = to_bytes(hexstr=condition_id) if isinstance(condition_id, str) else bytes(condition_id)
    except (ValueError, TypeError) as e:
        raise EncodingError(f"Invalid condition id {condition_id!r}: {e}", step="encode") from e
    if len(value) != 32:
        raise EncodingError(f"Condition id must be 32 bytes, got {len(value)}", step="encode")
    return value


class PositionOperations:
    """
    Routes position calls to the direct sender (EOA mode) or through the
    holder's Safe (Safe mode).

    Amounts are integer base units with 6 decimals; nothing is scaled here.

    Args:
        contracts: Contract addresses for the chain
        mode: EOA or POLY_GNOSIS_SAFE
        sender: Direct sender of the controlling identity
        executor: Safe executor, required in Safe mode
        wallet: Safe address, required in Safe mode
        reader: When given, redeems log the holder's collateral balance change
    """

    def __init__(
        self,
        contracts: ContractConfig,
        mode: SignatureMode,
        sender: TransactionSender,
        executor: Optional[SafeTransactionExecutor] = None,
        wallet: Optional[str] = None,
        reader: Optional[ContractReader] = None,
    ):
        if mode == SignatureMode.POLY_GNOSIS_SAFE and (executor is None or wallet is None):
            raise ConfigurationError("Safe mode needs an executor and a wallet address")
        if mode not in (SignatureMode.EOA, SignatureMode.POLY_GNOSIS_SAFE):
            raise ConfigurationError(f"Unsupported signature mode {mode!r}")
        self.contracts = contracts
        self.mode = mode
        self.sender = sender
        self.executor = executor
        self.wallet = wallet
        self.reader = reader

    @property
    def holder(self) -> str:
        """Account whose positions are moved"""
        return self.sender.address if self.mode == SignatureMode.EOA else self.wallet

    def _submit(self, target: str, data: bytes) -> str:
        if self.mode == SignatureMode.EOA:
            return self.sender.send(target, data)
        return self.executor.execute(self.wallet, target, 0, data)

    def _redeem(self, target: str, data: bytes) -> str:
        """
        Submit a redeem and log the collateral it has paid out so far.

        The second balance read happens right after submission, so a redeem
        that is not yet mined logs a zero change.

        Raises:
            ChainReadError: If the balance before the redeem cannot be read;
                nothing is submitted in that case
        """
        if self.reader is None:
            return self._submit(target, data)

        holder = self.holder
        before = self.reader.erc20_balance(self.contracts.collateral, holder)
        tx_hash = self._submit(target, data)
        logger.info(f"Redeem submitted for {holder}: {tx_hash}")

        try:
            after = self.reader.erc20_balance(self.contracts.collateral, holder)
        except ChainReadError as e:
            logger.warning(f"Could not read collateral balance of {holder} after redeem: {e}")
            return tx_hash
        logger.info(f"Redeemed {from_base_units(after - before)} collateral for {holder}")
        return tx_hash

    def split(self, condition_id: ConditionId, amount: int) -> str:
        """Split ``amount`` collateral into a full set of YES and NO tokens."""
        data = encode_split_position(
            self.contracts.collateral, condition_id_bytes(condition_id), BINARY_PARTITION, amount
        )
        return self._submit(self.contracts.conditional_tokens, data)

    def merge(self, condition_id: ConditionId, amount: int) -> str:
        """Merge ``amount`` full sets back into collateral."""
        data = encode_merge_positions(
            self.contracts.collateral, condition_id_bytes(condition_id), BINARY_PARTITION, amount
        )
        return self._submit(self.contracts.conditional_tokens, data)

    def redeem(self, condition_id: ConditionId) -> str:
        """Redeem winning positions of a resolved condition."""
        data = encode_redeem_positions(
            self.contracts.collateral, condition_id_bytes(condition_id), BINARY_PARTITION
        )
        return self._redeem(self.contracts.conditional_tokens, data)

    def split_neg_risk(self, condition_id: ConditionId, amount: int) -> str:
        data = encode_neg_risk_split(condition_id_bytes(condition_id), amount)
        return self._submit(self.contracts.neg_risk_adapter, data)

    def merge_neg_risk(self, condition_id: ConditionId, amount: int) -> str:
        data = encode_neg_risk_merge(condition_id_bytes(condition_id), amount)
        return self._submit(self.contracts.neg_risk_adapter, data)

    def redeem_neg_risk(self, condition_id: ConditionId, amounts: List[int]) -> str:
        """
        Redeem neg-risk positions.

        Args:
            condition_id: Resolved condition
            amounts: Amount of each outcome token to redeem, in outcome order
        """
        data = encode_neg_risk_redeem(condition_id_bytes(condition_id), list(amounts))
        return self._redeem(self.contracts.neg_risk_adapter, data)
