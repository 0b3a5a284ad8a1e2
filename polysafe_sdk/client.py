"""
PolySafe SDK client: one entry point wiring signers, senders, Safes and approvals.
"""
import logging
import time
from typing import Callable, List, Optional, Tuple

from web3 import Web3

from .approvals import ApprovalOrchestrator
from .config import AllowancePolicy, ContractConfig, GasPolicy, NetworkConfig, validate_url
from .contracts import ContractReader
from .exceptions import ConfigurationError
from .executor import SafeTransactionExecutor
from .gas import SafeGasEstimator
from .models import AllowanceSnapshot, SafeOperation, SignatureMode, SmartWalletAccount
from .polling import PollPolicy
from .positions import ConditionId, PositionOperations
from .sender import SafeTransactionSender, TransactionSender, sender_for_signer
from .signer.base import Signer
from .typed_data import build_clob_auth_typed_data
from .wallet import SafeWalletManager


class PolySafeClient:
    """
    Client for trading setup and position management from an EOA or its Safe.

    In Safe mode (the default) every approval and position call is signed by
    ``signer`` as the Safe's single owner and relayed through
    ``execTransaction``; the signer's own account pays for gas. In EOA mode
    the signer's account acts directly.
    """

    def __init__(
        self,
        signer: Signer,
        rpc_url: Optional[str] = None,
        w3: Optional[Web3] = None,
        mode: SignatureMode = SignatureMode.POLY_GNOSIS_SAFE,
        chain_id: Optional[int] = None,
        contracts: Optional[ContractConfig] = None,
        gas_policy: Optional[GasPolicy] = None,
        allowance_policy: Optional[AllowancePolicy] = None,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: int = 30,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the PolySafeClient

        Args:
            signer: Controlling identity (local key, keystore or MPC custody)
            rpc_url: JSON-RPC endpoint, used when ``w3`` is not given
            w3: Existing Web3 instance
            mode: EOA or POLY_GNOSIS_SAFE
            chain_id: Expected chain id (read from the node when omitted)
            contracts: Contract addresses (packaged table for the chain when omitted)
            gas_policy: Overhead and multiplier for Safe gas estimates
                (read from POLYSAFE_SAFE_GAS_* when omitted)
            allowance_policy: Collateral allowance granted when enabling trading
                (read from POLYSAFE_ALLOWANCE_AMOUNT when omitted)
            poll_policy: Attempt budget for custody polling
            sleep: Sleep function used by custody polling
            timeout: Timeout for RPC requests in seconds
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ConfigurationError: For an unsupported mode, a missing RPC endpoint,
                a non-https RPC URL, or an unknown chain
        """
        if mode == SignatureMode.POLY_PROXY:
            raise ConfigurationError("POLY_PROXY signature mode is not supported")
        if mode not in (SignatureMode.EOA, SignatureMode.POLY_GNOSIS_SAFE):
            raise ConfigurationError(f"Unknown signature mode {mode!r}")

        self.logger = logger or logging.getLogger(__name__)

        if w3 is None:
            if not rpc_url:
                raise ConfigurationError("Either rpc_url or w3 must be provided")
            validate_url("rpc_url", rpc_url)
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.w3 = w3
        self.reader = ContractReader(w3)

        self.chain_id = chain_id if chain_id is not None else self.reader.chain_id()
        self.contracts = contracts or NetworkConfig.get_contract_config(self.chain_id)
        self.mode = mode
        self.signer = signer

        self.sender: TransactionSender = sender_for_signer(
            w3, signer, self.chain_id, poll_policy=poll_policy, sleep=sleep
        )
        self.wallets = SafeWalletManager(self.reader, self.contracts.safe_proxy_factory, self.chain_id)
        self.estimator = SafeGasEstimator(w3, gas_policy or GasPolicy.from_env())
        self.executor = SafeTransactionExecutor(
            self.reader, signer, self.sender, self.chain_id, self.estimator
        )
        self.approvals = ApprovalOrchestrator(
            self.reader, self.contracts, allowance_policy or AllowancePolicy.from_env()
        )

        self.logger.debug(
            f"PolySafeClient ready: chain {self.chain_id}, mode {mode.name}, "
            f"signer {signer.kind.value} {signer.address}"
        )

    @classmethod
    def from_network(cls, network: str, signer: Signer, **kwargs) -> "PolySafeClient":
        """
        Create a client for a packaged network ("polygon", "amoy").

        The RPC URL can be overridden with POLYSAFE_RPC_<NETWORK>.
        """
        definition = NetworkConfig.get_network(network)
        return cls(
            signer,
            rpc_url=NetworkConfig.get_rpc_url(network),
            chain_id=int(definition["chainId"]),
            **kwargs,
        )

    @property
    def address(self) -> str:
        """Address of the controlling identity"""
        return self.signer.address

    def get_safe_address(self, owner: Optional[str] = None) -> str:
        """
        Get the Safe address for an owner (the signer by default).

        Raises:
            DerivationError: If the factory call fails
        """
        return self.wallets.get_address(owner or self.signer.address)

    def is_safe_deployed(self, owner: Optional[str] = None) -> bool:
        return self.wallets.is_deployed(self.get_safe_address(owner))

    def get_safe_account(self, owner: Optional[str] = None) -> SmartWalletAccount:
        return self.wallets.account(owner or self.signer.address)

    @property
    def holder(self) -> str:
        """Account that holds collateral and positions in the current mode"""
        if self.mode == SignatureMode.EOA:
            return self.signer.address
        return self.get_safe_address()

    def holder_sender(self) -> TransactionSender:
        """Sender that acts as ``holder``"""
        if self.mode == SignatureMode.EOA:
            return self.sender
        return SafeTransactionSender(self.executor, self.get_safe_address())

    def deploy_safe(self) -> Tuple[str, str]:
        """
        Deploy the signer's Safe, paid for by the signer's account.

        Returns:
            Tuple of (Safe address, transaction hash)

        Raises:
            AlreadyDeployedError: If the Safe already exists
        """
        safe, tx_hash = self.wallets.deploy(self.signer, self.sender)
        self.logger.info(f"Safe {safe} deployment submitted: {tx_hash}")
        return safe, tx_hash

    def deploy_safe_with_signature(
        self,
        signature: bytes,
        payment_token: str,
        payment: int,
        payment_receiver: str,
    ) -> Tuple[str, str]:
        """
        Deploy a Safe for whoever produced ``signature`` over CreateProxy.

        Returns:
            Tuple of (Safe address, transaction hash)
        """
        return self.wallets.deploy_with_signature(
            self.sender, self.chain_id, payment_token, payment, payment_receiver, signature
        )

    def sign_clob_auth(self, timestamp: Optional[int] = None, nonce: int = 0) -> str:
        """
        Sign the exchange API authentication challenge.

        Args:
            timestamp: Unix seconds (defaults to now)
            nonce: Challenge nonce

        Returns:
            0x-prefixed signature
        """
        if timestamp is None:
            timestamp = int(time.time())
        document = build_clob_auth_typed_data(self.signer.address, self.chain_id, timestamp, nonce)
        return Web3.to_hex(self.signer.sign_typed_data(document))

    def execute_through_safe(
        self,
        to: str,
        data: bytes,
        value: int = 0,
        operation: SafeOperation = SafeOperation.CALL,
        safe_tx_gas: Optional[int] = None,
    ) -> str:
        """
        Relay an arbitrary call through the signer's Safe.

        Raises:
            NotDeployedError: If the Safe has not been deployed
        """
        return self.executor.execute(
            self.get_safe_address(), to, value, data, operation=operation, safe_tx_gas=safe_tx_gas
        )

    def check_balance_and_allowance(self, holder: Optional[str] = None) -> AllowanceSnapshot:
        return self.approvals.check_balance_and_allowance(holder or self.holder)

    def log_balance_and_allowance(self, holder: Optional[str] = None) -> AllowanceSnapshot:
        return self.approvals.log_balance_and_allowance(holder or self.holder)

    def enable_trading(self) -> List[str]:
        """
        Submit whichever approvals the holder is still missing.

        Returns:
            Hashes of submitted approvals (empty if trading was already enabled)

        Raises:
            PartialApprovalError: If a grant fails part way through
        """
        holder = self.holder
        self.logger.info(f"Enabling trading for {holder} ({self.mode.name})")
        return self.approvals.ensure_trading_enabled(holder, self.holder_sender())

    @property
    def positions(self) -> PositionOperations:
        if self.mode == SignatureMode.EOA:
            return PositionOperations(self.contracts, self.mode, self.sender, reader=self.reader)
        return PositionOperations(
            self.contracts,
            self.mode,
            self.sender,
            executor=self.executor,
            wallet=self.get_safe_address(),
            reader=self.reader,
        )

    def split(self, condition_id: ConditionId, amount: int) -> str:
        return self.positions.split(condition_id, amount)

    def merge(self, condition_id: ConditionId, amount: int) -> str:
        return self.positions.merge(condition_id, amount)

    def redeem(self, condition_id: ConditionId) -> str:
        return self.positions.redeem(condition_id)

    def split_neg_risk(self, condition_id: ConditionId, amount: int) -> str:
        return self.positions.split_neg_risk(condition_id, amount)

    def merge_neg_risk(self, condition_id: ConditionId, amount: int) -> str:
        return self.positions.merge_neg_risk(condition_id, amount)

    def redeem_neg_risk(self, condition_id: ConditionId, amounts: List[int]) -> str:
        return self.positions.redeem_neg_risk(condition_id, amounts)

    def __repr__(self) -> str:
        return f"PolySafeClient(chain_id={self.chain_id}, mode={self.mode.name}, signer={self.signer!r})"
