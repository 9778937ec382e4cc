"""
Entry point for running todonotify directly.
"""

import sys

from todonotify.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
