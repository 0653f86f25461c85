"""Allow ``python -m live_battle``."""

import sys

from .cli import main

sys.exit(main())
