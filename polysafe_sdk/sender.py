"""
Transaction senders: how a signed call reaches the chain.

Three variants share one interface:

* ``DirectTransactionSender`` signs a legacy transaction locally and broadcasts it.
* ``MpcTransactionSender`` hands the call to the custody service and waits
  until it is on chain.
* ``SafeTransactionSender`` relays the call through a Safe wallet.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Dict, Optional

from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception

from .exceptions import ConfigurationError, EstimationError, SubmissionError
from .models import SafeOperation
from .polling import PollPolicy, PollState, TransactionPoller
from .signer.base import Signer
from .signer.local import LocalSigner
from .signer.mpc import MpcCustodyClient, MpcSigner

if TYPE_CHECKING:
    from .executor import SafeTransactionExecutor

logger = logging.getLogger(__name__)

RPC_ERRORS = (Web3Exception, ValueError, OSError)

# Gas price quoted to the custody service, as a percentage of the node's suggestion
CUSTODY_GAS_PRICE_PERCENT = 150

_account_locks: Dict[str, threading.Lock] = {}
_account_locks_guard = threading.Lock()


def _account_lock(address: str) -> threading.Lock:
    with _account_locks_guard:
        return _account_locks.setdefault(address, threading.Lock())


class TransactionSender(ABC):
    """Submits a call and returns its 0x-prefixed transaction hash."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Address the call is sent from"""
        ...

    @abstractmethod
    def send(self, to: str, data: bytes, value: int = 0) -> str:
        """
        Submit a call to ``to``.

        Returns:
            Transaction hash. For the direct sender this means "submitted";
            the custody sender only returns once the transaction is confirming.
        """
        ...


class DirectTransactionSender(TransactionSender):
    """
    Sends legacy transactions signed by a local or keystore key.

    Nonce read, signing and broadcast for one account happen under a lock so
    concurrent sends from the same key in this process cannot reuse a nonce.

    Args:
        w3: Web3 instance
        signer: Signer able to sign raw transactions
        chain_id: Chain id embedded in the signature
    """

    def __init__(self, w3: Web3, signer: LocalSigner, chain_id: int):
        self.w3 = w3
        self.signer = signer
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self.signer.address

    def send(self, to: str, data: bytes, value: int = 0) -> str:
        to = to_checksum_address(to)
        sender = self.signer.address

        with _account_lock(sender):
            try:
                nonce = self.w3.eth.get_transaction_count(sender, "pending")
                gas_price = self.w3.eth.gas_price
            except RPC_ERRORS as e:
                logger.error(f"Failed to read nonce or gas price for {sender}: {e}")
                raise SubmissionError(f"Failed to prepare transaction: {e}", step="send", contract=to) from e

            try:
                gas = self.w3.eth.estimate_gas({
                    "from": sender,
                    "to": to,
                    "value": value,
                    "data": Web3.to_hex(data),
                })
            except RPC_ERRORS as e:
                logger.error(f"Gas estimation failed for {to}: {e}")
                raise EstimationError(f"Failed to estimate gas: {e}", step="estimate", contract=to) from e

            tx = {
                "nonce": nonce,
                "to": to,
                "value": value,
                "gas": gas,
                "gasPrice": gas_price,
                "data": Web3.to_hex(data),
                "chainId": self.chain_id,
            }
            raw = self.signer.sign_transaction(tx)

            try:
                tx_hash = self.w3.eth.send_raw_transaction(raw)
            except RPC_ERRORS as e:
                logger.error(f"Broadcast failed for transaction to {to}: {e}")
                raise SubmissionError(f"Failed to send transaction: {e}", step="send", contract=to) from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Sent transaction {tx_hash_hex} from {sender} to {to} (nonce {nonce})")
        return tx_hash_hex


class MpcTransactionSender(TransactionSender):
    """
    Sends calls through the custody service.

    The service owns the nonce and broadcast. A legacy fee is quoted from the
    node (gas price with a 50% margin and the estimated gas limit), then the
    custody transaction is polled until it is confirming and carries a hash.

    Args:
        w3: Web3 instance used for the fee quote
        client: Custody API client
        poll_policy: Attempt budget for status polling (100 attempts by default)
        sleep: Sleep function used between polls
    """

    def __init__(
        self,
        w3: Web3,
        client: MpcCustodyClient,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.w3 = w3
        self.client = client
        self.poller = TransactionPoller(client.get_transaction, policy=poll_policy, sleep=sleep)

    @property
    def address(self) -> str:
        return self.client.address

    def _fee(self, to: str, data: bytes, value: int) -> Dict[str, str]:
        try:
            gas_price = self.w3.eth.gas_price * CUSTODY_GAS_PRICE_PERCENT // 100
            gas_limit = self.w3.eth.estimate_gas({
                "from": self.client.address,
                "to": to,
                "value": value,
                "data": Web3.to_hex(data),
            })
        except RPC_ERRORS as e:
            logger.error(f"Fee quote failed for custody call to {to}: {e}")
            raise EstimationError(f"Failed to estimate gas: {e}", step="estimate", contract=to) from e
        return self.client.legacy_fee(gas_price, gas_limit)

    def send(self, to: str, data: bytes, value: int = 0) -> str:
        to = to_checksum_address(to)
        fee = self._fee(to, data, value)
        transaction_id = self.client.call_contract(to, Web3.to_hex(data), value, fee=fee)
        logger.info(f"Submitted custody contract call {transaction_id} to {to}")

        outcome = self.poller.wait(
            transaction_id,
            target=PollState.CONFIRMING,
            ready=lambda detail: bool(detail.get("transaction_hash")),
        )
        if outcome.state not in (PollState.CONFIRMING, PollState.CONFIRMED):
            raise SubmissionError(
                f"Custody transaction {transaction_id} ended {outcome.state.value}",
                step="send",
                contract=to,
                attempts=outcome.attempts,
                last_status=outcome.last_status,
            )

        tx_hash = outcome.detail["transaction_hash"]
        if not tx_hash.startswith("0x"):
            tx_hash = "0x" + tx_hash
        logger.info(f"Custody transaction {transaction_id} is on chain as {tx_hash}")
        return tx_hash


class SafeTransactionSender(TransactionSender):
    """
    Sends calls from a Safe wallet by relaying them through ``execTransaction``.

    Args:
        executor: Executor whose signer owns the wallet
        wallet: Safe address
        operation: Call or DelegateCall for every relayed call
    """

    def __init__(
        self,
        executor: "SafeTransactionExecutor",
        wallet: str,
        operation: SafeOperation = SafeOperation.CALL,
    ):
        self.executor = executor
        self.wallet = to_checksum_address(wallet)
        self.operation = operation

    @property
    def address(self) -> str:
        return self.wallet

    def send(self, to: str, data: bytes, value: int = 0) -> str:
        return self.executor.execute(self.wallet, to, value, data, operation=self.operation)


def sender_for_signer(
    w3: Web3,
    signer: Signer,
    chain_id: int,
    poll_policy: Optional[PollPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> TransactionSender:
    """
    Pick the sender matching a signer backend.

    Raises:
        ConfigurationError: For a signer type with no sender
    """
    if isinstance(signer, MpcSigner):
        return MpcTransactionSender(w3, signer.client, poll_policy=poll_policy, sleep=sleep)
    if isinstance(signer, LocalSigner):
        return DirectTransactionSender(w3, signer, chain_id)
    raise ConfigurationError(f"Unsupported signer type {type(signer).__name__}")
