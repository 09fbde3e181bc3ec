"""
Main entry point for the tiledetect package.

Allows running: python -m tiledetect <command>
"""

import sys
from tiledetect.cli import main

if __name__ == "__main__":
    sys.exit(main())
