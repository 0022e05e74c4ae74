"""Allow ``python -m fintrack``."""

import sys

from fintrack.server import main

sys.exit(main())
