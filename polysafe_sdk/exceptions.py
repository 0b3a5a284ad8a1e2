"""
Exceptions for the PolySafe SDK.
"""
from typing import List, Optional


class PolySafeError(Exception):
    """
    Base exception for all SDK errors.

    Args:
        message: Human readable description
        step: Pipeline step that failed (e.g. "estimate", "sign", "send")
        contract: Address of the contract involved, if any
    """

    def __init__(self, message: str, step: Optional[str] = None, contract: Optional[str] = None):
        self.step = step
        self.contract = contract
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.step:
            context.append(f"step={self.step}")
        if self.contract:
            context.append(f"contract={self.contract}")
        if context:
            return f"{message} ({', '.join(context)})"
        return message


class ConfigurationError(PolySafeError):
    """Raised for unknown chains, missing signers, or unsupported signature modes."""
    pass


class DerivationError(PolySafeError):
    """Raised when the Safe address computation call fails or reverts."""
    pass


class EncodingError(PolySafeError):
    """Raised when ABI packing of a call fails. Always a programming error."""
    pass


class EstimationError(PolySafeError):
    """Raised when both the simulated and the direct gas estimate fail."""
    pass


class SigningError(PolySafeError):
    """Raised when a local key or remote signer fails to produce a signature."""
    pass


class SubmissionError(PolySafeError):
    """Raised when broadcasting fails or remote confirmation polling gives up."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        contract: Optional[str] = None,
        attempts: Optional[int] = None,
        last_status: Optional[str] = None,
    ):
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(message, step=step, contract=contract)


class ChainReadError(PolySafeError):
    """Raised when a read-only contract call (balance, allowance, nonce) fails."""
    pass


class AlreadyDeployedError(PolySafeError):
    """Raised when deploying a Safe that already has code on chain."""
    pass


class NotDeployedError(PolySafeError):
    """Raised when operating through a Safe that has not been deployed yet."""
    pass


class PartialApprovalError(PolySafeError):
    """
    Raised when enabling trading stops part way through.

    Approvals submitted before the failure stay on chain; calling
    ``ensure_trading_enabled`` again only issues the remaining grants.
    """

    def __init__(self, message: str, submitted: List[str], failed_grant: str, contract: Optional[str] = None):
        self.submitted = list(submitted)
        self.failed_grant = failed_grant
        super().__init__(message, step="approve", contract=contract)
