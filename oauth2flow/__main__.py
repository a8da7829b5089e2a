"""Allow ``python -m oauth2flow``."""

import sys

from .cli import main


sys.exit(main())
