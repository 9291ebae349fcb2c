"""
Main entry point when running the pantilt_scanner module with python -m.
"""

import sys

from .runner import main

if __name__ == "__main__":
    sys.exit(main())
