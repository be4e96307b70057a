"""Constants and configuration for vault ledger accounting."""

# Basis points denominator for every ratio (loss tolerance, health-check limits).
MAX_BPS = 100_00

# Skimming rates are normalized to a ray (1e27) before any conversion.
RATE_DECIMALS = 27
RAY = 10**RATE_DECIMALS

# Health-check defaults: any profit up to 100% passes, any loss fails.
DEFAULT_PROFIT_LIMIT_RATIO = MAX_BPS
DEFAULT_LOSS_LIMIT_RATIO = 0
MAX_PROFIT_LIMIT_RATIO = 2**16 - 1

# Cooldown between proposing and finalizing a new dragon router (operator), in seconds.
DRAGON_ROUTER_COOLDOWN = 14 * 24 * 60 * 60

# Stand-in for "no limit" in max_* queries.
MAX_UINT256 = 2**256 - 1

# Sentinel used for "no account" (unset pending management / dragon router).
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Minimal ABI for Lido (stETH) - functions we need for share rate calculation.
# Source: https://github.com/lidofinance/lido-staking-vault-cli/blob/main/abi/StEth.ts
LIDO_STETH_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "totalSupply",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "getTotalShares",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Minimal ERC-4626 ABI: enough to price one share of a yield-bearing vault in its asset.
ERC4626_MIN_ABI: list[dict] = [
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "name": "convertToAssets",
        "stateMutability": "view",
        "inputs": [{"name": "shares", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

# Lido share rate is a ray: totalSupply * 1e27 / totalShares.
LIDO_SHARE_RATE_DECIMALS = 27

# Default RPC timeout for on-chain rate reads, in seconds.
DEFAULT_TIMEOUT = 30

# Cache configuration
CACHE_DIR_NAME = ".vault_ledger_cache"
CACHE_VERSION = "1"  # Increment to invalidate all caches
