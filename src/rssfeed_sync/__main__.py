"""Entry point for rssfeed-sync: python -m rssfeed_sync"""

import sys

from rssfeed_sync.cli import main

if __name__ == "__main__":
    sys.exit(main())
