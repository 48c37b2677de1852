"""Allow ``python -m connwatch``."""

import sys

from connwatch.app import main

sys.exit(main())
