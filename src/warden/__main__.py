"""Allow running as python -m warden."""

import sys

from warden.cli import main

sys.exit(main())
