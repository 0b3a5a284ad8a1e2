"""
Gas estimation for calls executed through a Safe.
"""
import logging
from typing import Optional

from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import Web3Exception

from .abi import encode_simulate_and_revert
from .config import GasPolicy
from .exceptions import EstimationError

logger = logging.getLogger(__name__)

ESTIMATE_ERRORS = (Web3Exception, ValueError, OSError)


class SafeGasEstimator:
    """
    Estimates the ``safeTxGas`` budget for a relayed call.

    The Safe's ``simulateAndRevert`` is tried first. It always reverts, so on
    most nodes the estimate fails. The inner call is then estimated directly
    from the Safe, and the policy's overhead is added before the multiplier.

    Args:
        w3: Web3 instance
        policy: Overhead and multiplier (defaults to 15000 gas and 150%)
    """

    def __init__(self, w3: Web3, policy: Optional[GasPolicy] = None):
        self.w3 = w3
        self.policy = policy or GasPolicy()

    def estimate(self, wallet: str, to: str, value: int, data: bytes) -> int:
        """
        Estimate the gas budget to authorise for a Safe call.

        Args:
            wallet: Safe address the call executes from
            to: Target contract
            value: Native value forwarded by the Safe
            data: Target call data

        Returns:
            Gas budget, always at least the multiplier times the raw estimate

        Raises:
            EstimationError: If both estimation strategies fail
        """
        wallet = to_checksum_address(wallet)
        to = to_checksum_address(to)

        try:
            simulated = self.w3.eth.estimate_gas({
                "to": wallet,
                "data": Web3.to_hex(encode_simulate_and_revert(to, data)),
            })
            gas = self.policy.apply(int(simulated), with_overhead=False)
            logger.debug(f"Simulated Safe gas for {to}: {simulated}, budget {gas}")
            return gas
        except ESTIMATE_ERRORS as e:
            logger.debug(f"simulateAndRevert estimate failed for {wallet}, estimating {to} directly: {e}")

        try:
            direct = self.w3.eth.estimate_gas({
                "from": wallet,
                "to": to,
                "value": value,
                "data": Web3.to_hex(data),
            })
        except ESTIMATE_ERRORS as e:
            logger.error(f"Gas estimation failed for call to {to} from {wallet}: {e}")
            raise EstimationError(f"Failed to estimate gas: {e}", step="estimate", contract=to) from e

        gas = self.policy.apply(int(direct))
        logger.debug(f"Direct gas estimate for {to}: {direct}, budget {gas}")
        return gas
