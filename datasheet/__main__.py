"""Allow ``python -m datasheet``."""

import sys

from .cli import main


sys.exit(main())
