"""Allow running koharu with `python -m koharu`."""

import sys

from koharu.cli import main

sys.exit(main())
