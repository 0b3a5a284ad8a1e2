"""
Relays calls through a Safe wallet owned by a single signer.
"""
import logging
import threading
from typing import Dict, Optional

from eth_utils import to_checksum_address

from .abi import encode_exec_transaction
from .contracts import ContractReader
from .exceptions import NotDeployedError
from .gas import SafeGasEstimator
from .models import SafeOperation, SafeTransaction
from .sender import TransactionSender
from .signer.base import Signer
from .typed_data import build_safe_tx_typed_data

logger = logging.getLogger(__name__)


class SafeTransactionExecutor:
    """
    Signs and submits ``execTransaction`` calls for 1-of-1 Safes.

    The pipeline for one call is: deployment check, nonce read, gas
    estimate, SafeTx signature, calldata encoding, submission. Calls against
    the same wallet are serialized from the nonce read through submission.
    The nonce used is the larger of the on-chain nonce and one past the last
    nonce this executor submitted, so back-to-back calls made before the
    earlier ones are mined get consecutive nonces.

    Args:
        reader: Chain reader for code and nonce lookups
        signer: Owner of the Safe wallets this executor drives
        sender: Sender that pays for the outer transaction
        chain_id: Chain id for the SafeTx domain
        estimator: Gas estimator for the inner call
    """

    def __init__(
        self,
        reader: ContractReader,
        signer: Signer,
        sender: TransactionSender,
        chain_id: int,
        estimator: SafeGasEstimator,
    ):
        self.reader = reader
        self.signer = signer
        self.sender = sender
        self.chain_id = chain_id
        self.estimator = estimator
        self._wallet_locks: Dict[str, threading.Lock] = {}
        self._next_nonces: Dict[str, int] = {}
        self._guard = threading.Lock()

    def _lock_for(self, wallet: str) -> threading.Lock:
        with self._guard:
            return self._wallet_locks.setdefault(wallet, threading.Lock())

    def execute(
        self,
        wallet: str,
        to: str,
        value: int,
        data: bytes,
        operation: SafeOperation = SafeOperation.CALL,
        safe_tx_gas: Optional[int] = None,
    ) -> str:
        """
        Execute a call from ``wallet``.

        Args:
            wallet: Safe address
            to: Target of the inner call
            value: Native value the Safe forwards
            data: Inner call data
            operation: CALL or DELEGATE_CALL
            safe_tx_gas: Explicit gas budget; estimated when None or 0

        Returns:
            Hash of the outer transaction

        Raises:
            NotDeployedError: If the wallet has no code
            ChainReadError: If the nonce cannot be read
            EstimationError: If gas estimation fails
            SigningError: If the owner cannot sign
            SubmissionError: If the outer transaction cannot be sent
        """
        wallet = to_checksum_address(wallet)
        to = to_checksum_address(to)

        with self._lock_for(wallet):
            if len(self.reader.get_code(wallet)) == 0:
                raise NotDeployedError(f"Safe {wallet} is not deployed", step="execute", contract=wallet)

            nonce = max(self.reader.safe_nonce(wallet), self._next_nonces.get(wallet, 0))
            if not safe_tx_gas:
                safe_tx_gas = self.estimator.estimate(wallet, to, value, data)

            tx = SafeTransaction(
                to=to,
                value=value,
                data=data,
                operation=operation,
                safe_tx_gas=safe_tx_gas,
                nonce=nonce,
            )
            document = build_safe_tx_typed_data(self.chain_id, wallet, tx)
            signature = self.signer.sign_typed_data(document)

            calldata = encode_exec_transaction(
                tx.to,
                tx.value,
                tx.data,
                tx.operation,
                tx.safe_tx_gas,
                signature,
                base_gas=tx.base_gas,
                gas_price=tx.gas_price,
                gas_token=tx.gas_token,
                refund_receiver=tx.refund_receiver,
            )
            logger.debug(f"Relaying call to {to} through Safe {wallet} (nonce {nonce}, safeTxGas {safe_tx_gas})")
            tx_hash = self.sender.send(wallet, calldata)
            self._next_nonces[wallet] = nonce + 1

        logger.info(f"Safe {wallet} executed call to {to} in transaction {tx_hash}")
        return tx_hash
