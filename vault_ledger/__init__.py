"""Multi-strategy vault accounting: debt rebalancing, donating and skimming ledgers."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the vault-ledger script."""
    import sys

    from vault_ledger.cli import main

    raise SystemExit(main(sys.argv[1:]))


def _clear_cache_entry_point() -> NoReturn:
    """Entry point for clearing the cache."""
    from vault_ledger.cache import clear_cache

    clear_cache()
    raise SystemExit(0)
