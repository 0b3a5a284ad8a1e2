"""
MPC custody signer.

The key never leaves the custody service: typed data is signed by submitting
a message-sign request and polling until it completes. Contract calls are
submitted through the same API by ``MpcTransactionSender``.
"""
import hashlib
import json
import logging
import os
import time
import urllib.parse
import uuid
from typing import Any, Callable, Dict, Optional

import requests
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_utils import to_bytes, to_checksum_address
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import NetworkConfig, validate_url
from ..exceptions import ConfigurationError, SigningError, SubmissionError
from ..polling import PollPolicy, PollState, TransactionPoller
from ..typed_data import TypedDataDocument
from .base import Signer, SignerKind, normalize_signature

logger = logging.getLogger(__name__)

CUSTODY_BASE_URLS = {
    "dev": "https://api.dev.cobo.com/v2",
    "prod": "https://api.cobo.com/v2",
}

SOURCE_TYPE_ORG_CONTROLLED = "Org-Controlled"
DESTINATION_EVM_CONTRACT = "EVM_Contract"
DESTINATION_EIP712 = "EVM_EIP_712_Signature"
FEE_TYPE_EVM_LEGACY = "EVM_Legacy"


class MpcCustodyClient:
    """
    Minimal client for the custody service's transaction API.

    Every request is signed with the organisation's Ed25519 API secret.

    Args:
        api_secret: Hex encoded 32-byte Ed25519 private key
        wallet_id: Custody wallet holding the signing address
        address: EVM address controlled by the wallet
        chain: Custody chain identifier (e.g. "MATIC")
        base_url: API root including the version path
        retry_count: Number of retries for HTTP requests
        timeout: Timeout for HTTP requests in seconds
    """

    def __init__(
        self,
        api_secret: str,
        wallet_id: str,
        address: str,
        chain: str,
        base_url: str = CUSTODY_BASE_URLS["prod"],
        retry_count: int = 3,
        timeout: int = 30,
    ):
        validate_url("base_url", base_url)
        try:
            self._key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(api_secret.removeprefix("0x")))
        except ValueError as e:
            raise ConfigurationError("Invalid custody API secret") from e

        self.api_key = self._key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()
        self.wallet_id = wallet_id
        self.address = to_checksum_address(address)
        self.chain = chain
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self.session = requests.Session()
        retries = Retry(
            total=retry_count,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
            connect=retry_count,
            read=retry_count,
        )
        self.session.mount("http://", HTTPAdapter(max_retries=retries))
        self.session.mount("https://", HTTPAdapter(max_retries=retries))

    @classmethod
    def from_env(cls, network: str = "polygon") -> "MpcCustodyClient":
        """
        Build a client from POLYSAFE_MPC_* environment variables.

        POLYSAFE_MPC_CHAIN defaults to the custody chain code of ``network``
        ("MATIC" for polygon, "TMATIC" for amoy).

        Raises:
            ConfigurationError: If a required variable is missing
        """
        required = {
            name: os.environ.get(f"POLYSAFE_MPC_{name}")
            for name in ("API_SECRET", "WALLET_ID", "ADDRESS")
        }
        missing = [f"POLYSAFE_MPC_{name}" for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(f"Missing custody configuration: {', '.join(missing)}")

        env = os.environ.get("POLYSAFE_MPC_ENV", "prod")
        if env not in CUSTODY_BASE_URLS:
            raise ConfigurationError(f"POLYSAFE_MPC_ENV must be one of {sorted(CUSTODY_BASE_URLS)}")

        return cls(
            api_secret=required["API_SECRET"],
            wallet_id=required["WALLET_ID"],
            address=required["ADDRESS"],
            chain=os.environ.get("POLYSAFE_MPC_CHAIN") or NetworkConfig.get_network(network)["custodyChain"],
            base_url=CUSTODY_BASE_URLS[env],
        )

    def _auth_headers(self, method: str, path: str, params: str, body: str) -> Dict[str, str]:
        nonce = str(int(time.time() * 1000))
        content = "|".join([method, path, nonce, params, body])
        digest = hashlib.sha256(hashlib.sha256(content.encode()).digest()).digest()
        return {
            "BIZ-API-KEY": self.api_key,
            "BIZ-API-NONCE": nonce,
            "BIZ-API-SIGNATURE": self._key.sign(digest).hex(),
        }

    def _sanitize_payload(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Shorten bulky or sensitive request fields for logging

        Args:
            payload: Request body about to be sent

        Returns:
            Copy of the payload safe to log
        """
        if not isinstance(payload, dict):
            return {}

        result = payload.copy()
        destination = result.get("destination")
        if isinstance(destination, dict):
            destination = destination.copy()
            if "calldata" in destination:
                destination["calldata"] = f"[{len(str(destination['calldata']))} chars]"
            if "structured_data" in destination:
                destination["structured_data"] = "[REDACTED]"
            result["destination"] = destination
        return result

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        path = urllib.parse.urlparse(url).path
        query = urllib.parse.urlencode(sorted((params or {}).items()))
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""

        headers = self._auth_headers(method, path, query, body)
        if payload is not None:
            headers["Content-Type"] = "application/json"

        logger.debug(f"Custody request {method} {path}: {self._sanitize_payload(payload)}")
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                data=body or None,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            detail = e.response.text if e.response is not None else ""
            logger.error(f"Custody API {method} {path} returned an error: {e} {detail}")
            raise SubmissionError(f"Custody API request failed: {e}", step="custody") from e
        except requests.RequestException as e:
            logger.error(f"Custody API {method} {path} failed: {e}")
            raise SubmissionError(f"Custody API request failed: {e}", step="custody") from e
        except ValueError as e:
            logger.error(f"Invalid JSON response from custody API: {e}")
            raise SubmissionError(f"Invalid JSON response from custody API: {e}", step="custody") from e

    def _source(self) -> Dict[str, str]:
        return {
            "source_type": SOURCE_TYPE_ORG_CONTROLLED,
            "wallet_id": self.wallet_id,
            "address": self.address.lower(),
        }

    def call_contract(
        self,
        to: str,
        calldata: str,
        value: int = 0,
        fee: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Submit a contract call for the custody service to sign and broadcast.

        Args:
            to: Contract address
            calldata: 0x-hex call data
            value: Native value in wei
            fee: Optional fee object (see ``legacy_fee``)

        Returns:
            Custody transaction id
        """
        payload: Dict[str, Any] = {
            "request_id": str(uuid.uuid4()),
            "chain_id": self.chain,
            "source": self._source(),
            "destination": {
                "destination_type": DESTINATION_EVM_CONTRACT,
                "address": to.lower(),
                "value": str(value),
                "calldata": calldata,
            },
        }
        if fee:
            payload["fee"] = fee
        result = self._request("POST", "/transactions/contract_call", payload)
        return _transaction_id(result)

    def sign_message(self, structured_data: Dict[str, Any]) -> str:
        """
        Submit an EIP-712 document for signing.

        Returns:
            Custody transaction id
        """
        payload = {
            "request_id": str(uuid.uuid4()),
            "chain_id": self.chain,
            "source": self._source(),
            "destination": {
                "destination_type": DESTINATION_EIP712,
                "structured_data": structured_data,
            },
        }
        result = self._request("POST", "/transactions/message_sign", payload)
        return _transaction_id(result)

    def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        """Fetch the current detail of a custody transaction."""
        return self._request("GET", f"/transactions/{transaction_id}")

    def legacy_fee(self, gas_price: int, gas_limit: int) -> Dict[str, str]:
        return {
            "fee_type": FEE_TYPE_EVM_LEGACY,
            "token_id": self.chain,
            "gas_price": str(gas_price),
            "gas_limit": str(gas_limit),
        }


def _transaction_id(result: Dict[str, Any]) -> str:
    transaction_id = result.get("transaction_id")
    if not transaction_id:
        raise SubmissionError(f"Custody API response missing transaction_id: {result}", step="custody")
    return transaction_id


def extract_signature(detail: Dict[str, Any]) -> bytes:
    """
    Read the signature from a completed message-sign transaction.

    Raises:
        SigningError: If the detail carries no usable signature
    """
    try:
        raw = detail["result"]["signatures"][0]["signature"]
    except (KeyError, IndexError, TypeError) as e:
        raise SigningError("Custody transaction completed without a signature", step="sign") from e
    if not raw.startswith("0x"):
        raw = "0x" + raw
    try:
        return normalize_signature(to_bytes(hexstr=raw))
    except ValueError as e:
        raise SigningError(f"Malformed signature from custody service: {e}", step="sign") from e


class MpcSigner(Signer):
    """
    Signer whose key is held by the MPC custody service.

    Signing blocks until the custody service completes the request or the
    poll budget runs out.

    Args:
        client: Custody API client
        poll_policy: Attempt budget and backoff for status polling
        sleep: Sleep function used between polls
    """

    kind = SignerKind.MPC_CUSTODY

    def __init__(
        self,
        client: MpcCustodyClient,
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.poller = TransactionPoller(client.get_transaction, policy=poll_policy, sleep=sleep)

    @property
    def address(self) -> str:
        return self.client.address

    def sign_typed_data(self, document: TypedDataDocument) -> bytes:
        try:
            transaction_id = self.client.sign_message(document.to_dict())
            logger.info(f"Submitted {document.primary_type} for custody signing as {transaction_id}")
            outcome = self.poller.wait(transaction_id, target=PollState.CONFIRMED)
        except SubmissionError as e:
            raise SigningError(
                f"Custody service failed to sign {document.primary_type}: {e}", step="sign"
            ) from e

        if outcome.state != PollState.CONFIRMED:
            raise SigningError(
                f"Custody signing of {document.primary_type} ended {outcome.state.value} "
                f"after {outcome.attempts} attempts (last status {outcome.last_status})",
                step="sign",
            )
        return extract_signature(outcome.detail)
