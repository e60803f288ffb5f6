"""Allow ``python -m pcitrack``."""

import sys

from pcitrack.cli import main

sys.exit(main())
