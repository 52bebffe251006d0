"""
Backoffice 진입점

실행 방법:
    python -m backoffice <command>
"""

import sys

from backoffice.cli import main

if __name__ == "__main__":
    sys.exit(main())
