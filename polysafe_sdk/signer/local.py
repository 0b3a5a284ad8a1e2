"""
In-process private key signer.
"""
import logging
from typing import Any, Dict

from eth_account import Account
from eth_account.signers.local import LocalAccount

from ..exceptions import SigningError
from ..typed_data import TypedDataDocument
from .base import Signer, SignerKind, normalize_signature

logger = logging.getLogger(__name__)


class LocalSigner(Signer):
    """
    Signer backed by a private key held in memory.

    Signs both typed data and raw transactions.

    Args:
        private_key: Hex private key (with or without 0x) or raw 32 bytes
    """

    kind = SignerKind.LOCAL_KEY

    def __init__(self, private_key):
        try:
            self._account: LocalAccount = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            # never echo the key material
            raise SigningError("Invalid private key") from e

    @property
    def address(self) -> str:
        return self._account.address

    def sign_typed_data(self, document: TypedDataDocument) -> bytes:
        try:
            signed = self._account.sign_message(document.signable())
        except Exception as e:
            logger.error(f"Typed data signing failed for {document.primary_type}: {e}")
            raise SigningError(f"Failed to sign {document.primary_type}: {e}", step="sign") from e
        return normalize_signature(bytes(signed.signature))

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        """
        Sign a transaction dict.

        Returns:
            Raw signed transaction bytes ready for eth_sendRawTransaction

        Raises:
            SigningError: If signing fails
        """
        try:
            signed = self._account.sign_transaction(transaction)
        except Exception as e:
            logger.error(f"Transaction signing failed: {e}")
            raise SigningError(f"Failed to sign transaction: {e}", step="sign") from e
        return bytes(signed.raw_transaction)
