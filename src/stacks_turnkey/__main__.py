"""Entry point for running the CLI as module: python -m stacks_turnkey"""

# Load .env file before importing anything else
from dotenv import load_dotenv
load_dotenv()

import sys

from stacks_turnkey.cli import main

if __name__ == "__main__":
    sys.exit(main())
