"""On-chain rate sources backed by web3 contract calls."""

from typing import TYPE_CHECKING, Any

from vault_ledger.cache import cache_key, cached_int
from vault_ledger.constants import ERC4626_MIN_ABI, LIDO_SHARE_RATE_DECIMALS, LIDO_STETH_MIN_ABI, RAY

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover

RATE_SOURCE_KINDS = ("lido", "erc4626")


def calculate_share_rate(w3: "Web3", lido_address: str, *, block_identifier: int | str = "latest") -> int:
    """
    Calculate the share rate from Lido stETH contract: (totalSupply * 1e27) / getTotalShares.

    This follows the pattern from lido-staking-vault-cli/utils/share-rate.ts.
    Returns the share rate as a ray (1e27 scale), or 0 before any shares exist.
    """
    lido_contract = w3.eth.contract(
        address=w3.to_checksum_address(lido_address),
        abi=LIDO_STETH_MIN_ABI,
    )
    total_supply = lido_contract.functions.totalSupply().call(block_identifier=block_identifier)
    total_shares = lido_contract.functions.getTotalShares().call(block_identifier=block_identifier)
    if total_shares == 0:
        return 0
    return int((total_supply * RAY) // total_shares)


class _OnchainRateSource:
    """Shared plumbing: only reads pinned to a block number are cacheable."""

    kind = ""

    def __init__(self, w3: "Web3", address: str, *, block_identifier: int | str = "latest", use_cache: bool = True):
        self.w3 = w3
        self.address = w3.to_checksum_address(address)
        self.block_identifier = block_identifier
        self.use_cache = use_cache and isinstance(block_identifier, int)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address}, block={self.block_identifier})"

    def _key(self, name: str) -> str:
        return cache_key(self.kind, name, self.address, self.block_identifier)


class LidoShareRateSource(_OnchainRateSource):
    """Pooled ETH per stETH share, as a ray."""

    kind = "lido"

    def get_current_exchange_rate(self) -> int:
        return cached_int(
            self._key("share_rate"),
            lambda: calculate_share_rate(self.w3, self.address, block_identifier=self.block_identifier),
            use_cache=self.use_cache,
        )

    def decimals_of_exchange_rate(self) -> int:
        return LIDO_SHARE_RATE_DECIMALS


class Erc4626RateSource(_OnchainRateSource):
    """Assets per whole share of an ERC-4626 vault, quoted with the vault's decimals."""

    kind = "erc4626"

    def __init__(self, w3: "Web3", address: str, **kwargs: Any) -> None:
        super().__init__(w3, address, **kwargs)
        self._contract = w3.eth.contract(address=self.address, abi=ERC4626_MIN_ABI)
        self._decimals: int | None = None

    def decimals_of_exchange_rate(self) -> int:
        if self._decimals is None:
            self._decimals = cached_int(
                cache_key(self.kind, "decimals", self.address),
                lambda: self._contract.functions.decimals().call(),
                use_cache=self.use_cache,
            )
        return self._decimals

    def get_current_exchange_rate(self) -> int:
        one_share = 10 ** self.decimals_of_exchange_rate()
        return cached_int(
            self._key("convert_to_assets"),
            lambda: self._contract.functions.convertToAssets(one_share).call(block_identifier=self.block_identifier),
            use_cache=self.use_cache,
        )


def build_rate_source(
    w3: "Web3", kind: str, address: str, *, block_identifier: int | str = "latest", use_cache: bool = True
) -> _OnchainRateSource:
    """Instantiate the rate source for `kind` ("lido" or "erc4626")."""
    if kind == "lido":
        return LidoShareRateSource(w3, address, block_identifier=block_identifier, use_cache=use_cache)
    if kind == "erc4626":
        return Erc4626RateSource(w3, address, block_identifier=block_identifier, use_cache=use_cache)
    raise ValueError(f"Unknown rate source kind: {kind} (expected one of {', '.join(RATE_SOURCE_KINDS)})")
