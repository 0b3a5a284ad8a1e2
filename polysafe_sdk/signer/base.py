"""
Signer interface shared by the local, keystore and MPC custody backends.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Tuple

from ..typed_data import TypedDataDocument


class SignerKind(str, Enum):
    """The only signer backends the SDK accepts."""
    LOCAL_KEY = "local_key"
    KEYSTORE = "keystore"
    MPC_CUSTODY = "mpc_custody"


class Signer(ABC):
    """
    A controlling identity that can sign EIP-712 typed data.

    Implementations must return ``address`` without a network round trip.
    """

    kind: SignerKind

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksummed address of the signing key"""
        ...

    @abstractmethod
    def sign_typed_data(self, document: TypedDataDocument) -> bytes:
        """
        Sign a typed data document.

        Returns:
            65-byte signature r || s || v with v in {27, 28}

        Raises:
            SigningError: If no signature could be produced
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(address={self.address})"


def split_signature(signature: bytes) -> Tuple[int, bytes, bytes]:
    """
    Split a 65-byte signature into (v, r, s) with v normalised to 27/28.

    Raises:
        ValueError: If the signature is not 65 bytes long
    """
    if len(signature) != 65:
        raise ValueError(f"Expected a 65-byte signature, got {len(signature)} bytes")
    r = bytes(signature[:32])
    s = bytes(signature[32:64])
    v = signature[64]
    if v < 27:
        v += 27
    return v, r, s


def normalize_signature(signature: bytes) -> bytes:
    """Return the signature with v in {27, 28}, as the Safe contract expects."""
    v, r, s = split_signature(signature)
    return r + s + bytes([v])
