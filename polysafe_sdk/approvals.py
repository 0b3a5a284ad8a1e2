"""
Approvals a holder needs before it can trade on the exchange.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from eth_utils import to_checksum_address

from .abi import encode_approve, encode_set_approval_for_all
from .config import AllowancePolicy, ContractConfig
from .contracts import ContractReader
from .exceptions import PartialApprovalError, PolySafeError
from .models import AllowanceSnapshot, from_base_units
from .sender import TransactionSender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Grant:
    """One approval: an ERC-20 allowance or a conditional-token operator approval."""
    name: str
    token: str
    spender: str
    erc20: bool

    def is_missing(self, snapshot: AllowanceSnapshot) -> bool:
        return not getattr(snapshot, self.name)

    def encode(self, amount: int) -> bytes:
        if self.erc20:
            return encode_approve(self.spender, amount)
        return encode_set_approval_for_all(self.spender, True)


class ApprovalOrchestrator:
    """
    Issues only the missing approvals, in a fixed order.

    The six grants are: collateral to the exchange, the neg-risk adapter and
    the neg-risk exchange, then conditional-token operator approval for the
    same three spenders.

    Args:
        reader: Chain reader
        contracts: Contract addresses for the chain
        policy: Collateral allowance amount
    """

    def __init__(
        self,
        reader: ContractReader,
        contracts: ContractConfig,
        policy: Optional[AllowancePolicy] = None,
    ):
        self.reader = reader
        self.contracts = contracts
        self.policy = policy or AllowancePolicy()

    @property
    def grants(self) -> List[Grant]:
        c = self.contracts
        return [
            Grant("allowance_exchange", c.collateral, c.exchange, True),
            Grant("allowance_neg_risk_adapter", c.collateral, c.neg_risk_adapter, True),
            Grant("allowance_neg_risk_exchange", c.collateral, c.neg_risk_exchange, True),
            Grant("ctf_approved_exchange", c.conditional_tokens, c.exchange, False),
            Grant("ctf_approved_neg_risk_adapter", c.conditional_tokens, c.neg_risk_adapter, False),
            Grant("ctf_approved_neg_risk_exchange", c.conditional_tokens, c.neg_risk_exchange, False),
        ]

    def check_balance_and_allowance(self, holder: str) -> AllowanceSnapshot:
        """
        Read the holder's collateral balance and all six approvals.

        Raises:
            ChainReadError: If any read fails
        """
        holder = to_checksum_address(holder)
        c = self.contracts
        return AllowanceSnapshot(
            holder=holder,
            balance=self.reader.erc20_balance(c.collateral, holder),
            allowance_exchange=self.reader.erc20_allowance(c.collateral, holder, c.exchange),
            allowance_neg_risk_adapter=self.reader.erc20_allowance(c.collateral, holder, c.neg_risk_adapter),
            allowance_neg_risk_exchange=self.reader.erc20_allowance(c.collateral, holder, c.neg_risk_exchange),
            ctf_approved_exchange=self.reader.is_approved_for_all(c.conditional_tokens, holder, c.exchange),
            ctf_approved_neg_risk_adapter=self.reader.is_approved_for_all(
                c.conditional_tokens, holder, c.neg_risk_adapter
            ),
            ctf_approved_neg_risk_exchange=self.reader.is_approved_for_all(
                c.conditional_tokens, holder, c.neg_risk_exchange
            ),
        )

    def log_balance_and_allowance(self, holder: str) -> AllowanceSnapshot:
        """Read the holder's snapshot and log it at info level."""
        snapshot = self.check_balance_and_allowance(holder)
        logger.info(f"Balance of {snapshot.holder}: {from_base_units(snapshot.balance)} collateral")
        for grant in self.grants:
            logger.info(f"  {grant.name}: {getattr(snapshot, grant.name)}")
        logger.info(f"  trading enabled: {snapshot.trading_enabled}")
        return snapshot

    def ensure_trading_enabled(self, holder: str, sender: TransactionSender) -> List[str]:
        """
        Submit whichever of the six grants the holder is missing.

        Args:
            holder: Account whose approvals are checked (EOA or Safe)
            sender: Sender that acts as ``holder``

        Returns:
            Hashes of the submitted approvals, in grant order. Empty when
            nothing was missing.

        Raises:
            ChainReadError: If the initial snapshot cannot be read
            PartialApprovalError: If a grant fails; earlier grants stay submitted
        """
        snapshot = self.check_balance_and_allowance(holder)
        submitted: List[str] = []

        for grant in self.grants:
            if not grant.is_missing(snapshot):
                continue
            try:
                tx_hash = sender.send(grant.token, grant.encode(self.policy.amount))
            except PolySafeError as e:
                logger.error(f"Approval {grant.name} for {snapshot.holder} failed after {len(submitted)} submitted: {e}")
                raise PartialApprovalError(
                    f"Failed to submit {grant.name}: {e}",
                    submitted=submitted,
                    failed_grant=grant.name,
                    contract=grant.token,
                ) from e
            logger.info(f"Submitted {grant.name} for {snapshot.holder}: {tx_hash}")
            submitted.append(tx_hash)

        if not submitted:
            logger.info(f"Trading already enabled for {snapshot.holder}")
        return submitted
