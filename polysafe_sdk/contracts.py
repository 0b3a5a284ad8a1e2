"""
Read-only chain access: Safe nonces, address derivation, balances and approvals.
"""
import logging
from typing import Any, Callable, Optional

from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception

from .abi import CONDITIONAL_TOKENS_ABI, ERC20_ABI, SAFE_ABI, SAFE_PROXY_FACTORY_ABI
from .exceptions import ChainReadError, DerivationError

logger = logging.getLogger(__name__)

# Errors a provider or contract call can surface
READ_ERRORS = (Web3Exception, ValueError, OSError)


class ContractReader:
    """
    Thin wrapper over a Web3 handle for the few reads the SDK performs.

    Args:
        w3: Web3 instance
    """

    def __init__(self, w3: Web3):
        self.w3 = w3

    def _call(self, what: str, contract: Optional[str], fn: Callable[[], Any], error=ChainReadError) -> Any:
        try:
            return fn()
        except READ_ERRORS as e:
            logger.error(f"Failed to read {what} from {contract}: {e}")
            raise error(f"Failed to read {what}: {e}", step="read", contract=contract) from e

    def chain_id(self) -> int:
        return self._call("chain id", None, lambda: int(self.w3.eth.chain_id))

    def get_code(self, address: str) -> bytes:
        address = to_checksum_address(address)
        return bytes(self._call("code", address, lambda: self.w3.eth.get_code(address)))

    def safe_nonce(self, safe: str) -> int:
        safe = to_checksum_address(safe)
        contract = self.w3.eth.contract(address=safe, abi=SAFE_ABI)
        return int(self._call("Safe nonce", safe, contract.functions.nonce().call))

    def compute_proxy_address(self, factory: str, owner: str) -> str:
        """
        Ask the factory for the Safe address of ``owner``.

        Raises:
            DerivationError: If the call fails or reverts
        """
        factory = to_checksum_address(factory)
        contract = self.w3.eth.contract(address=factory, abi=SAFE_PROXY_FACTORY_ABI)
        result = self._call(
            "proxy address",
            factory,
            contract.functions.computeProxyAddress(to_checksum_address(owner)).call,
            error=DerivationError,
        )
        return to_checksum_address(result)

    def erc20_balance(self, token: str, holder: str) -> int:
        token = to_checksum_address(token)
        contract = self.w3.eth.contract(address=token, abi=ERC20_ABI)
        return int(self._call(
            "balance", token, contract.functions.balanceOf(to_checksum_address(holder)).call
        ))

    def erc20_allowance(self, token: str, holder: str, spender: str) -> int:
        token = to_checksum_address(token)
        contract = self.w3.eth.contract(address=token, abi=ERC20_ABI)
        return int(self._call(
            "allowance",
            token,
            contract.functions.allowance(to_checksum_address(holder), to_checksum_address(spender)).call,
        ))

    def is_approved_for_all(self, token: str, holder: str, operator: str) -> bool:
        token = to_checksum_address(token)
        contract = self.w3.eth.contract(address=token, abi=CONDITIONAL_TOKENS_ABI)
        return bool(self._call(
            "operator approval",
            token,
            contract.functions.isApprovedForAll(
                to_checksum_address(holder), to_checksum_address(operator)
            ).call,
        ))

