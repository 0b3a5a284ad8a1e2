"""
Network and policy configuration for the PolySafe SDK.
"""
import json
import logging
import os
import urllib.parse
from dataclasses import dataclass
from importlib import resources
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ConfigurationError
from .models import MAX_UINT256

logger = logging.getLogger(__name__)


class ContractConfig(BaseModel):
    """Deployed contract addresses for one chain. Immutable once loaded."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    collateral: str
    conditional_tokens: str = Field(..., alias="conditionalTokens")
    exchange: str
    neg_risk_adapter: str = Field(..., alias="negRiskAdapter")
    neg_risk_exchange: str = Field(..., alias="negRiskExchange")
    safe_proxy_factory: str = Field(..., alias="safeProxyFactory")

    @field_validator("*")
    @classmethod
    def _checksum(cls, value: str) -> str:
        return to_checksum_address(value)


class NetworkConfig:
    """Loads the packaged network table (networks.json)."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load all network definitions, caching them after the first read.

        Returns:
            Mapping of network name to its definition
        """
        if cls._networks_cache is None:
            path = resources.files("polysafe_sdk").joinpath("networks.json")
            with path.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, name: str) -> Dict[str, Any]:
        """
        Get a network definition by name.

        Raises:
            ConfigurationError: If the network is not defined
        """
        networks = cls.load_networks()
        if name not in networks:
            raise ConfigurationError(
                f"Unknown network '{name}'. Available networks: {', '.join(sorted(networks))}"
            )
        return networks[name]

    @classmethod
    def get_network_by_chain_id(cls, chain_id: int) -> Dict[str, Any]:
        """
        Get a network definition by chain id.

        Raises:
            ConfigurationError: If no network uses that chain id
        """
        for network in cls.load_networks().values():
            if int(network["chainId"]) == int(chain_id):
                return network
        raise ConfigurationError(f"Unsupported chain id {chain_id}")

    @classmethod
    def get_contract_config(cls, chain_id: int) -> ContractConfig:
        """Build the immutable contract configuration for a chain id."""
        network = cls.get_network_by_chain_id(chain_id)
        return ContractConfig.model_validate(network["contracts"])

    @classmethod
    def get_rpc_url(cls, name: str) -> str:
        """
        Get the RPC URL for a network, honouring a POLYSAFE_RPC_<NAME> override.
        """
        override = os.environ.get(f"POLYSAFE_RPC_{name.upper()}")
        if override:
            return override
        return cls.get_network(name)["rpc"]


@dataclass(frozen=True)
class GasPolicy:
    """
    Safety margins for gas authorised by a relayed Safe call.

    The defaults fit the Safe L2 contract's check that remaining gas exceeds
    max(safeTxGas * 64 / 63, safeTxGas + 2500) + 500.
    """
    overhead: int = 15000
    multiplier_percent: int = 150

    def apply(self, gas: int, with_overhead: bool = True) -> int:
        if with_overhead:
            gas += self.overhead
        return gas * self.multiplier_percent // 100

    @classmethod
    def from_env(cls) -> "GasPolicy":
        return cls(
            overhead=int(os.environ.get("POLYSAFE_SAFE_GAS_OVERHEAD", cls.overhead)),
            multiplier_percent=int(
                os.environ.get("POLYSAFE_SAFE_GAS_MULTIPLIER_PERCENT", cls.multiplier_percent)
            ),
        )


@dataclass(frozen=True)
class AllowancePolicy:
    """
    Collateral allowance granted to each spender when enabling trading.

    Defaults to the maximum uint256 so a single approval lasts; this gives the
    spender unlimited access to the holder's collateral.
    """
    amount: int = MAX_UINT256

    def __post_init__(self):
        if not 0 < self.amount <= MAX_UINT256:
            raise ConfigurationError(f"Allowance amount out of range: {self.amount}")

    @classmethod
    def from_env(cls) -> "AllowancePolicy":
        raw = os.environ.get("POLYSAFE_ALLOWANCE_AMOUNT")
        if raw is None:
            return cls()
        return cls(amount=int(raw, 0))


def validate_url(name: str, url: str) -> None:
    """
    Require https for remote endpoints (localhost and 127.0.0.1 are exempt).

    Raises:
        ConfigurationError: If a non-local URL does not use https
    """
    parsed = urllib.parse.urlparse(url)
    host = parsed.netloc.split(":")[0] if parsed.netloc else ""
    is_local = host in ("localhost", "127.0.0.1")
    if parsed.scheme != "https" and not is_local:
        raise ConfigurationError(f"{name} must use https:// for security (got: {parsed.scheme}://)")
