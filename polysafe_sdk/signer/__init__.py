"""
Signer backends: local private key, encrypted keystore, and MPC custody.
"""
from .base import Signer, SignerKind, normalize_signature, split_signature
from .keystore import KeystoreSigner, create_keystore
from .local import LocalSigner
from .mpc import MpcCustodyClient, MpcSigner

__all__ = [
    "Signer",
    "SignerKind",
    "LocalSigner",
    "KeystoreSigner",
    "MpcSigner",
    "MpcCustodyClient",
    "create_keystore",
    "normalize_signature",
    "split_signature",
]
