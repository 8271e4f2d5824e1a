"""Entry point: ``python -m src.worker``."""

import sys

from src.worker.runtime import main

if __name__ == "__main__":
    sys.exit(main())
