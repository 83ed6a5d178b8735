"""Entry point for `python -m chorus` command."""

import sys

from chorus.cli.__main__ import main

if __name__ == "__main__":
    sys.exit(main())
