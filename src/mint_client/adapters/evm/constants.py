"""
EVM Chain Configuration Management

Provides the client configuration (contract addresses, amounts, timing), the
chain descriptors used for ``wallet_addEthereumChain``, and the canonical
amount conversions between human-readable and smallest-unit values.
"""

import os
from typing import Dict, Optional, List, Any, Union
from decimal import Decimal, InvalidOperation

import dotenv
import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from web3 import Web3

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()


class NativeCurrency(BaseModel):
    """Native gas currency metadata for a chain."""
    name: str
    symbol: str
    decimals: int = Field(..., ge=0)


class ChainDescriptor(BaseModel):
    """Everything a wallet needs to add the target chain."""
    chain_id: int = Field(..., gt=0, description="EIP-155 chain id")
    chain_name: str = Field(..., description="Human-readable network name")
    native_currency: NativeCurrency
    rpc_urls: List[str] = Field(..., min_length=1, description="JSON-RPC endpoints")
    block_explorer_urls: List[str] = Field(default_factory=list, description="Block explorer base URLs")

    @property
    def hex_chain_id(self) -> str:
        return hex(self.chain_id)

    def to_add_chain_params(self) -> Dict[str, Any]:
        """
        Build the ``wallet_addEthereumChain`` parameter object (EIP-3085).

        Returns:
            Dict[str, Any]: camelCase parameter dict with a hex chain id.
        """
        return {
            "chainId": self.hex_chain_id,
            "chainName": self.chain_name,
            "nativeCurrency": self.native_currency.model_dump(),
            "rpcUrls": list(self.rpc_urls),
            "blockExplorerUrls": list(self.block_explorer_urls),
        }


class EvmChainInfo(BaseModel):
    """Subset of ethereum-lists chain metadata we rely on.

    Compatible with the JSON files in `ethereum-lists/chains`
    (eip155-<chain_id>.json).
    """
    name: str = Field(..., description="Human-readable network name")
    rpc: List[str] = Field(..., description="List of RPC endpoints")
    chainId: int = Field(..., description="Chain ID of the network")
    nativeCurrency: NativeCurrency
    explorers: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Optional list of explorer descriptors from the upstream payload",
    )


# Built-in chain data. Chains outside this table are resolved from
# ethereum-lists on demand.
_EVM_CHAINS_DATA: Dict[int, Dict[str, Any]] = {
    8453: {
        "chain_name": "Base",
        "native_currency": {"name": "Ethereum", "symbol": "ETH", "decimals": 18},
        "rpc_urls": ["https://mainnet.base.org"],
        "block_explorer_urls": ["https://basescan.org"],
    },
    84532: {
        "chain_name": "Base Sepolia",
        "native_currency": {"name": "Sepolia Ether", "symbol": "ETH", "decimals": 18},
        "rpc_urls": ["https://sepolia.base.org"],
        "block_explorer_urls": ["https://sepolia.basescan.org"],
    },
    1: {
        "chain_name": "Ethereum Mainnet",
        "native_currency": {"name": "Ether", "symbol": "ETH", "decimals": 18},
        "rpc_urls": ["https://ethereum-rpc.publicnode.com"],
        "block_explorer_urls": ["https://etherscan.io"],
    },
}

#: USDC on Base mainnet.
DEFAULT_STABLECOIN_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
#: Fixed-ratio token contract on Base mainnet.
DEFAULT_TOKEN_ADDRESS = "0x20f4c2f4113360bec894825a070e24175ee4ecb8"
DEFAULT_CHAIN_ID = 8453


class MintConfig(BaseModel):
    """
    Fixed values supplied at startup; constants for one session.

    Attributes:
        stablecoin_address: Stablecoin (input token) contract
        token_address: Purchased token contract, also the allowance spender
        chain_id: Target chain id
        rpc_url: Chain RPC endpoint used for reads and the add-chain descriptor
        purchase_amount: Input amount for one purchase, human units
        stablecoin_decimals: Stablecoin decimals
        output_amount: Tokens received per purchase, human units
        token_decimals: Purchased token decimals
        approval_multiplier: Approval ceiling in purchases
        refresh_delay_seconds: Settling delay before the post-purchase refresh
        confirmation_timeout: Receipt wait bound in seconds (None waits forever)
        poll_interval: Receipt polling interval in seconds
        request_timeout: HTTP timeout for RPC requests in seconds
        enable_transfer_fallback: Whether the transfer-then-mint last resort runs
        wallet_rpc_url: Local wallet bridge endpoint for JsonRpcWalletProvider
    """
    stablecoin_address: str = DEFAULT_STABLECOIN_ADDRESS
    token_address: str = DEFAULT_TOKEN_ADDRESS
    chain_id: int = Field(default=DEFAULT_CHAIN_ID, gt=0)
    rpc_url: str = "https://mainnet.base.org"
    purchase_amount: Decimal = Field(default=Decimal("1"), gt=0)
    stablecoin_decimals: int = Field(default=6, ge=0)
    output_amount: Decimal = Field(default=Decimal("8004"), gt=0)
    token_decimals: int = Field(default=18, ge=0)
    approval_multiplier: int = Field(default=10, ge=1)
    refresh_delay_seconds: float = Field(default=3.0, ge=0)
    confirmation_timeout: Optional[float] = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=2.0, gt=0)
    request_timeout: int = Field(default=30, gt=0)
    enable_transfer_fallback: bool = True
    wallet_rpc_url: Optional[str] = None

    @field_validator("stablecoin_address", "token_address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"not an EVM address: {value!r}")
        return Web3.to_checksum_address(value)

    @model_validator(mode="after")
    def _distinct_contracts(self) -> "MintConfig":
        if self.stablecoin_address == self.token_address:
            raise ValueError("stablecoin and token contracts must differ")
        return self

    @property
    def required_input_value(self) -> int:
        """One purchase's cost in stablecoin smallest units."""
        return amount_to_value(amount=self.purchase_amount, decimals=self.stablecoin_decimals)

    @property
    def output_value(self) -> int:
        """Tokens received per purchase in smallest units."""
        return amount_to_value(amount=self.output_amount, decimals=self.token_decimals)

    @property
    def approval_ceiling_value(self) -> int:
        """Approval amount covering ``approval_multiplier`` purchases."""
        return self.required_input_value * self.approval_multiplier

    @classmethod
    def from_env(cls, **overrides: Any) -> "MintConfig":
        """
        Build a config from ``MINT_*`` environment variables.

        Unset variables keep their defaults; keyword overrides win over the
        environment.

        Environment Variables:
            - MINT_STABLECOIN_ADDRESS, MINT_TOKEN_ADDRESS
            - MINT_CHAIN_ID, MINT_RPC_URL, MINT_WALLET_RPC_URL
            - MINT_PURCHASE_AMOUNT, MINT_OUTPUT_AMOUNT
            - MINT_APPROVAL_MULTIPLIER, MINT_REFRESH_DELAY
            - MINT_CONFIRMATION_TIMEOUT ("none" disables the bound)

        Raises:
            ConfigurationError: If any value fails validation.
        """
        env_map = {
            "stablecoin_address": "MINT_STABLECOIN_ADDRESS",
            "token_address": "MINT_TOKEN_ADDRESS",
            "chain_id": "MINT_CHAIN_ID",
            "rpc_url": "MINT_RPC_URL",
            "wallet_rpc_url": "MINT_WALLET_RPC_URL",
            "purchase_amount": "MINT_PURCHASE_AMOUNT",
            "output_amount": "MINT_OUTPUT_AMOUNT",
            "approval_multiplier": "MINT_APPROVAL_MULTIPLIER",
            "refresh_delay_seconds": "MINT_REFRESH_DELAY",
            "confirmation_timeout": "MINT_CONFIRMATION_TIMEOUT",
        }
        values: Dict[str, Any] = {}
        for field_name, var in env_map.items():
            raw = os.getenv(var)
            if raw is None or not raw.strip():
                continue
            raw = raw.strip()
            if field_name == "confirmation_timeout" and raw.lower() == "none":
                values[field_name] = None
            else:
                values[field_name] = raw
        values.update(overrides)

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid mint configuration: {e}") from e


def get_chain_descriptor(chain_id: int, rpc_url: Optional[str] = None) -> Optional[ChainDescriptor]:
    """
    Look up the built-in descriptor for ``chain_id``.

    Args:
        chain_id: EIP-155 chain id.
        rpc_url: Preferred RPC endpoint; placed first in ``rpc_urls`` when given.

    Returns:
        ChainDescriptor, or None when the chain is not in the built-in table.
    """
    data = _EVM_CHAINS_DATA.get(chain_id)
    if data is None:
        return None
    rpc_urls = list(data["rpc_urls"])
    if rpc_url and rpc_url not in rpc_urls:
        rpc_urls.insert(0, rpc_url)
    return ChainDescriptor(chain_id=chain_id, **{**data, "rpc_urls": rpc_urls})


async def resolve_chain_descriptor(chain_id: int, rpc_url: Optional[str] = None) -> ChainDescriptor:
    """
    Return a descriptor for ``chain_id`` from the built-in table or, failing
    that, from ethereum-lists.

    Raises:
        ConfigurationError: If the chain is unknown locally and upstream.
    """
    descriptor = get_chain_descriptor(chain_id, rpc_url)
    if descriptor is not None:
        return descriptor

    try:
        info = await fetch_evm_chain_info(chain_id)
    except (httpx.HTTPError, RuntimeError, TypeError) as e:
        raise ConfigurationError(f"No chain descriptor available for chain {chain_id}: {e}") from e

    rpc_urls = [rpc_url] if rpc_url else []
    public_rpc = parse_public_rpc_url(info.rpc)
    if public_rpc and public_rpc not in rpc_urls:
        rpc_urls.append(public_rpc)
    if not rpc_urls:
        raise ConfigurationError(f"Chain {chain_id} has no usable public RPC endpoint")

    explorers = [e["url"] for e in (info.explorers or []) if isinstance(e.get("url"), str)]
    return ChainDescriptor(
        chain_id=info.chainId,
        chain_name=info.name,
        native_currency=info.nativeCurrency,
        rpc_urls=rpc_urls,
        block_explorer_urls=explorers,
    )


async def fetch_evm_chain_info(chain_id: int) -> EvmChainInfo:
    """
    Retrieves EVM chain configuration from the ethereum-lists repository.

    Args:
        chain_id: EIP-155 chain id.

    Returns:
        EvmChainInfo: A validated data object containing chain metadata.

    Raises:
        httpx.HTTPError: If the chain configuration file is not found or unreachable.
        TypeError: If the returned payload does not match the EvmChainInfo schema.
    """
    url = (
        "https://raw.githubusercontent.com/ethereum-lists/chains/master/_data/chains/"
        f"eip155-{chain_id}.json"
    )

    payload = await fetch_json(url)

    try:
        return EvmChainInfo(**payload)
    except ValidationError as e:
        raise TypeError(
            f"Schema mismatch: Data from {url} is incompatible with EvmChainInfo."
        ) from e


async def fetch_json(url: str, timeout: float = 10.0) -> Dict[str, Any]:
    """
    Fetches JSON data from a URL and raises detailed exceptions on failure.

    Raises:
        httpx.HTTPStatusError: If the server returns a 4xx or 5xx status code.
        httpx.RequestError: If a network-level error occurs.
        RuntimeError: If the response is not valid JSON.
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url)
        response.raise_for_status()

        try:
            return response.json()
        except ValueError as json_exc:
            raise RuntimeError(
                f"Failed to decode JSON from {url}. Content-Type: {response.headers.get('Content-Type')}"
            ) from json_exc


def parse_public_rpc_url(rpcs: List[str], start_with: str = "https://") -> Optional[str]:
    """Pick a public (no-key) RPC URL from a chain's RPC list.

    Prefers plain HTTPS endpoints without placeholder markers (`$` or
    `{...}`), which indicate an API key is required.
    """
    for rpc in rpcs or []:
        if not isinstance(rpc, str):
            continue
        if not rpc.startswith(start_with):
            continue
        if "$" in rpc or "{" in rpc or "}" in rpc:
            continue
        return rpc
    return None


def amount_to_value(*, amount: Union[float, int, str, Decimal], decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. 1.23 for USDC). Accepts float/int/str/Decimal.
        decimals: Token decimals (e.g. 6 for USDC).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() avoids binary-float artefacts (0.1 -> 0.1000000000000000055...)
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    scaled = dec_amount * (Decimal(10) ** decimals)

    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: Union[int, str, Decimal], decimals: int) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `amount`.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if dec_value < 0:
        raise ValueError("value must be non-negative")

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    return dec_value / (Decimal(10) ** decimals)
