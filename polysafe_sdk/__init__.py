"""
PolySafe SDK: Safe wallet deployment, relayed execution and trading approvals
for the Polymarket contracts, driven by a local key, a keystore or MPC custody.
"""
from .approvals import ApprovalOrchestrator
from .client import PolySafeClient
from .config import AllowancePolicy, ContractConfig, GasPolicy, NetworkConfig
from .exceptions import (
    AlreadyDeployedError,
    ChainReadError,
    ConfigurationError,
    DerivationError,
    EncodingError,
    EstimationError,
    NotDeployedError,
    PartialApprovalError,
    PolySafeError,
    SigningError,
    SubmissionError,
)
from .executor import SafeTransactionExecutor
from .gas import SafeGasEstimator
from .models import (
    AllowanceSnapshot,
    SafeOperation,
    SafeTransaction,
    SignatureMode,
    SmartWalletAccount,
    from_base_units,
    to_base_units,
)
from .polling import PollPolicy, PollState, TransactionPoller
from .positions import PositionOperations
from .sender import (
    DirectTransactionSender,
    MpcTransactionSender,
    SafeTransactionSender,
    TransactionSender,
    sender_for_signer,
)
from .signer import KeystoreSigner, LocalSigner, MpcCustodyClient, MpcSigner, Signer, SignerKind
from .typed_data import (
    TypedDataDocument,
    build_clob_auth_typed_data,
    build_create_proxy_typed_data,
    build_safe_tx_typed_data,
)
from .version import __version__
from .wallet import SafeAddressCache, SafeWalletManager

__all__ = [
    "PolySafeClient",
    "ApprovalOrchestrator",
    "PositionOperations",
    "SafeTransactionExecutor",
    "SafeGasEstimator",
    "SafeAddressCache",
    "SafeWalletManager",
    "TransactionSender",
    "DirectTransactionSender",
    "MpcTransactionSender",
    "SafeTransactionSender",
    "sender_for_signer",
    "Signer",
    "SignerKind",
    "LocalSigner",
    "KeystoreSigner",
    "MpcSigner",
    "MpcCustodyClient",
    "TypedDataDocument",
    "build_create_proxy_typed_data",
    "build_safe_tx_typed_data",
    "build_clob_auth_typed_data",
    "NetworkConfig",
    "ContractConfig",
    "GasPolicy",
    "AllowancePolicy",
    "PollPolicy",
    "PollState",
    "TransactionPoller",
    "SafeOperation",
    "SafeTransaction",
    "SignatureMode",
    "SmartWalletAccount",
    "AllowanceSnapshot",
    "to_base_units",
    "from_base_units",
    "PolySafeError",
    "ConfigurationError",
    "DerivationError",
    "EncodingError",
    "EstimationError",
    "SigningError",
    "SubmissionError",
    "ChainReadError",
    "AlreadyDeployedError",
    "NotDeployedError",
    "PartialApprovalError",
    "__version__",
]
