"""Allow running the package as a module: python -m vault_ledger"""

import sys

from vault_ledger.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
