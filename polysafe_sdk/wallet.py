"""
Safe wallet derivation, deployment checks and deployment.
"""
import logging
import threading
from typing import Dict, Tuple

from eth_account import Account
from eth_utils import to_checksum_address

from .abi import encode_create_proxy
from .contracts import ContractReader
from .exceptions import AlreadyDeployedError, SigningError
from .models import SmartWalletAccount, ZERO_ADDRESS
from .sender import TransactionSender
from .signer.base import Signer, split_signature
from .typed_data import build_create_proxy_typed_data

logger = logging.getLogger(__name__)


class SafeAddressCache:
    """
    Memoizes owner -> Safe address lookups against the proxy factory.

    Addresses are deterministic for a factory, so entries never expire.
    Lookups of known owners are plain dict reads; only inserts take the lock,
    and the factory call itself happens outside it.
    """

    def __init__(self, reader: ContractReader, factory: str):
        self.reader = reader
        self.factory = to_checksum_address(factory)
        self._addresses: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, owner: str) -> str:
        """
        Return the Safe address for ``owner``.

        Raises:
            DerivationError: If the factory call fails
        """
        owner = to_checksum_address(owner)
        cached = self._addresses.get(owner)
        if cached is not None:
            return cached

        address = self.reader.compute_proxy_address(self.factory, owner)
        with self._lock:
            # a concurrent caller may have filled the entry; both results are identical
            address = self._addresses.setdefault(owner, address)
        logger.debug(f"Derived Safe {address} for owner {owner}")
        return address

    def __len__(self) -> int:
        return len(self._addresses)


class SafeWalletManager:
    """
    Derives, inspects and deploys Safe wallets from one proxy factory.

    Args:
        reader: Chain reader
        factory: Safe proxy factory address
        chain_id: Chain id used in the CreateProxy domain
    """

    def __init__(self, reader: ContractReader, factory: str, chain_id: int):
        self.reader = reader
        self.factory = to_checksum_address(factory)
        self.chain_id = chain_id
        self.addresses = SafeAddressCache(reader, self.factory)

    def get_address(self, owner: str) -> str:
        return self.addresses.get(owner)

    def is_deployed(self, address: str) -> bool:
        """Whether the address has contract code. Always read from the chain."""
        return len(self.reader.get_code(address)) > 0

    def account(self, owner: str) -> SmartWalletAccount:
        owner = to_checksum_address(owner)
        address = self.addresses.get(owner)
        return SmartWalletAccount(owner=owner, address=address, deployed=self.is_deployed(address))

    def deploy(self, owner_signer: Signer, sender: TransactionSender) -> Tuple[str, str]:
        """
        Deploy the owner's Safe with a gasless CreateProxy signature.

        Args:
            owner_signer: Signer that will own the Safe
            sender: Sender that pays for the deployment transaction

        Returns:
            Tuple of (Safe address, transaction hash)

        Raises:
            AlreadyDeployedError: If the Safe already has code
        """
        safe = self.addresses.get(owner_signer.address)
        if self.is_deployed(safe):
            raise AlreadyDeployedError(
                f"Safe {safe} for {owner_signer.address} is already deployed", step="deploy", contract=safe
            )

        document = build_create_proxy_typed_data(self.chain_id, self.factory)
        signature = owner_signer.sign_typed_data(document)
        return self._create_proxy(sender, safe, ZERO_ADDRESS, 0, ZERO_ADDRESS, signature)

    def deploy_with_signature(
        self,
        sender: TransactionSender,
        chain_id: int,
        payment_token: str,
        payment: int,
        payment_receiver: str,
        signature: bytes,
    ) -> Tuple[str, str]:
        """
        Deploy a Safe from a CreateProxy signature produced elsewhere.

        The owner is recovered from the signature, so any account can submit it.

        Returns:
            Tuple of (Safe address, transaction hash)
        """
        document = build_create_proxy_typed_data(
            chain_id, self.factory, payment_token, payment, payment_receiver
        )
        try:
            vrs = split_signature(signature)
            owner = Account.recover_message(document.signable(), vrs=vrs)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid CreateProxy signature: {e}", step="deploy") from e

        safe = self.addresses.get(owner)
        if self.is_deployed(safe):
            raise AlreadyDeployedError(
                f"Safe {safe} for {owner} is already deployed", step="deploy", contract=safe
            )
        return self._create_proxy(sender, safe, payment_token, payment, payment_receiver, signature)

    def _create_proxy(
        self,
        sender: TransactionSender,
        safe: str,
        payment_token: str,
        payment: int,
        payment_receiver: str,
        signature: bytes,
    ) -> Tuple[str, str]:
        try:
            vrs = split_signature(signature)
        except ValueError as e:
            raise SigningError(str(e), step="deploy") from e

        data = encode_create_proxy(
            to_checksum_address(payment_token), payment, to_checksum_address(payment_receiver), vrs
        )
        tx_hash = sender.send(self.factory, data)
        logger.info(f"Deploying Safe {safe} in transaction {tx_hash}")
        return safe, tx_hash
