"""Allow ``python -m cipherchat``."""

import sys

from .main import main

sys.exit(main())
