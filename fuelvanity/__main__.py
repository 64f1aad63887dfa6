"""Entry point for python -m fuelvanity."""

import sys

from fuelvanity.cli import main

if __name__ == "__main__":
    sys.exit(main())
